"""
时间戳恢复器

对每条记录：去掉开头的分隔符 -> 在镜像中查找 -> 按偏移修正 -> 转成 debugfs 日历格式
-> 在一次 debugfs 会话中写入 ctime/crtime/mtime/atime。
单个条目失败只记录并跳过，不影响其他条目。
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from loguru import logger

from .errors import InodeWriteFailure
from .models import (
    AdjustedTimestamps,
    EntryResult,
    RestoreOutcome,
    RestoreSummary,
    TimestampRecord,
)

DEBUGFS_TIME_FORMAT = "%Y%m%d%H%M%S"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def adjust_timestamps(record: TimestampRecord, offset: int) -> AdjustedTimestamps:
    """
    把本地时钟的原始时间戳修正为 UTC

    crtime 为 0 表示源端没有创建时间，此时用修正后的 ctime 代替。
    """
    ctime = record.ctime - offset
    crtime = ctime if record.crtime == 0 else record.crtime - offset
    return AdjustedTimestamps(
        ctime=ctime,
        mtime=record.mtime - offset,
        atime=record.atime - offset,
        crtime=crtime,
    )


def format_debugfs_time(epoch: int) -> str:
    """
    纪元秒 -> debugfs 使用的 UTC 日历格式 YYYYMMDDHHMMSS

    debugfs 把 1970 年以前的日历时间解析晚一天，负值改用 @<纪元秒> 形式
    """
    if epoch < 0:
        return f"@{epoch}"
    return (_EPOCH + timedelta(seconds=epoch)).strftime(DEBUGFS_TIME_FORMAT)


def inode_fields(adjusted: AdjustedTimestamps) -> List[Tuple[str, str]]:
    return [
        ("ctime", format_debugfs_time(adjusted.ctime)),
        ("crtime", format_debugfs_time(adjusted.crtime)),
        ("mtime", format_debugfs_time(adjusted.mtime)),
        ("atime", format_debugfs_time(adjusted.atime)),
    ]


def restore_entry(editor, record: TimestampRecord, offset: int) -> EntryResult:
    """恢复单个条目并返回结果"""
    relative = record.relative_path
    try:
        if editor.lookup(relative) is None:
            logger.debug(f"镜像中不存在，跳过: {record.path}")
            return EntryResult(record.path, RestoreOutcome.SKIPPED_MISSING)
        editor.set_inode_fields(relative, inode_fields(adjust_timestamps(record, offset)))
    except InodeWriteFailure as e:
        logger.warning(f"恢复 {record.path} 时间戳失败: {e.message}")
        return EntryResult(record.path, RestoreOutcome.FAILED, e.message)
    return EntryResult(record.path, RestoreOutcome.APPLIED)


def restore_timestamps(
    records: Iterable[TimestampRecord],
    offset: int,
    editor,
    on_progress: Optional[Callable[[EntryResult], None]] = None,
) -> RestoreSummary:
    """
    按记录顺序把原始时间戳写回镜像

    参数:
        records: 导出的记录列表
        offset: 源端时钟偏移（本地 - UTC，秒）
        editor: 提供 lookup() 与 set_inode_fields() 的 inode 编辑器，设备必须未挂载
        on_progress: 每处理完一个条目时调用

    返回:
        RestoreSummary: 成功、跳过、失败的计数
    """
    summary = RestoreSummary()
    for record in records:
        result = restore_entry(editor, record, offset)
        summary.add(result)
        if on_progress:
            on_progress(result)

    logger.info(
        f"时间戳恢复完成: 成功 {summary.applied}，"
        f"镜像中不存在 {summary.skipped_missing}，失败 {summary.failed}"
    )
    return summary
