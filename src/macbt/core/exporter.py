"""
时间戳导出器

在源端遍历自身设备上的所有文件、目录和符号链接（find -xdev），
按 路径|ctime|mtime|atime|crtime 输出原始纪元秒，不写入源端。
"""
from typing import Iterable, List, Sequence

from loguru import logger

from .models import ExportResult, MountEntry
from .records import parse_record

STAT_FORMAT = "%n|%Z|%Y|%X|%W"

# stat 失败的条目（遍历中被删除等）不会产生输出；整体退出码不作为失败依据
EXPORT_SCRIPT = (
    "find / -xdev \\( -type f -o -type d -o -type l \\) "
    f"-exec stat --format='{STAT_FORMAT}' {{}} + 2>/dev/null; true"
)

DEFAULT_EXCLUDED_FSTYPES = (
    "proc", "sysfs", "devpts", "devtmpfs", "mqueue", "cgroup", "cgroup2",
    "securityfs", "debugfs", "tracefs", "pstore", "bpf", "configfs",
    "fusectl", "hugetlbfs", "binfmt_misc", "autofs",
)


def excluded_mountpoints(mounts: Iterable[MountEntry], excluded_fstypes: Sequence[str]) -> List[str]:
    """挑出伪文件系统的挂载点（不含根目录）"""
    points = {
        entry.mountpoint.rstrip("/")
        for entry in mounts
        if entry.fstype in excluded_fstypes and entry.mountpoint.rstrip("/")
    }
    return sorted(points)


def is_below(path: str, mountpoints: Sequence[str]) -> bool:
    """path 是否严格位于某个挂载点之下；挂载点目录本身保留"""
    return any(path.startswith(point + "/") for point in mountpoints)


def parse_export_output(output: str, mountpoints: Sequence[str] = ()) -> ExportResult:
    """
    解析源端 stat 输出

    参数:
        output: 每行一条 stat 结果
        mountpoints: 需要排除其下条目的挂载点

    返回:
        ExportResult: 按遍历顺序保留的记录及各类跳过计数
    """
    result = ExportResult()
    seen = set()
    for line in output.splitlines():
        if not line.strip():
            continue
        try:
            record = parse_record(line)
        except ValueError:
            result.skipped += 1
            logger.debug(f"跳过无法解析的条目: {line!r}")
            continue
        if is_below(record.path, mountpoints):
            result.excluded += 1
            continue
        if record.path in seen:
            result.duplicates += 1
            continue
        seen.add(record.path)
        result.records.append(record)
    return result


def export_timestamps(source, excluded_fstypes: Sequence[str] = DEFAULT_EXCLUDED_FSTYPES) -> ExportResult:
    """
    从源环境导出 MACB 时间戳

    参数:
        source: 提供 run() 与 mount_table() 的源环境
        excluded_fstypes: 需要排除的伪文件系统类型

    返回:
        ExportResult
    """
    mountpoints = excluded_mountpoints(source.mount_table(), excluded_fstypes)
    if mountpoints:
        logger.debug(f"排除伪文件系统挂载点: {', '.join(mountpoints)}")

    logger.info(f"正在从 {source.name} 导出 MACB 时间戳...")
    output = source.run(EXPORT_SCRIPT)
    result = parse_export_output(output, mountpoints)

    logger.info(f"导出 {len(result.records)} 条记录")
    if result.skipped:
        logger.warning(f"跳过 {result.skipped} 个无法读取的条目")
    if result.excluded:
        logger.info(f"排除伪文件系统下的 {result.excluded} 个条目")
    return result
