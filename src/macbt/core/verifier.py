"""
恢复前后对单个路径的元数据快照
"""
import re

from loguru import logger

from .errors import InodeWriteFailure
from .models import MetadataSnapshot

TIME_FIELDS = ("ctime", "atime", "mtime", "crtime")

_INODE = re.compile(r"^Inode:\s+(\d+)", re.MULTILINE)
# 大 inode: " ctime: 0x65543c80:00000000 -- ..."，小 inode 没有冒号后的扩展字段
_TIME = re.compile(
    r"^\s*(ctime|atime|mtime|crtime):\s+0x([0-9a-fA-F]+)(?::([0-9a-fA-F]+))?",
    re.MULTILINE,
)


def decode_ext4_time(low: int, extra: int = 0) -> int:
    """ext4 时间：32 位有符号秒 + extra 低 2 位的纪元扩展"""
    seconds = low - (1 << 32) if low & (1 << 31) else low
    return seconds + ((extra & 0x3) << 32)


def parse_stat_output(path: str, raw: str) -> MetadataSnapshot:
    """把 debugfs stat 的输出解析成快照"""
    snapshot = MetadataSnapshot(path=path, found=True, raw=raw)
    match = _INODE.search(raw)
    if match:
        snapshot.inode = int(match.group(1))
    for name, low, extra in _TIME.findall(raw):
        snapshot.times[name] = decode_ext4_time(int(low, 16), int(extra, 16) if extra else 0)
    return snapshot


def snapshot(editor, path: str) -> MetadataSnapshot:
    """
    读取路径的完整元数据快照

    路径不存在时返回 found=False 的快照，不抛出异常。
    """
    try:
        raw = editor.stat(path.lstrip("/"))
    except InodeWriteFailure as e:
        logger.warning(f"无法读取校验路径 {path}: {e.message}")
        raw = None
    if raw is None:
        logger.warning(f"镜像中未找到校验路径: {path}")
        return MetadataSnapshot(path=path, found=False, raw="File not found.")
    return parse_stat_output(path, raw)
