"""
时间戳记录文件

每行一条记录: <绝对路径>|<ctime>|<mtime>|<atime>|<crtime>
"""
from pathlib import Path
from typing import Iterable, List

from loguru import logger

from .errors import RecordListError
from .models import TimestampRecord

SEPARATOR = "|"


def format_record(record: TimestampRecord) -> str:
    return SEPARATOR.join([
        record.path,
        str(record.ctime),
        str(record.mtime),
        str(record.atime),
        str(record.crtime),
    ])


def parse_record(line: str) -> TimestampRecord:
    """解析一行记录

    路径本身可能含有分隔符，因此从右侧拆分出四个时间字段。

    Raises:
        ValueError: 字段不足或时间字段不是整数
    """
    parts = line.rstrip("\r\n").rsplit(SEPARATOR, 4)
    if len(parts) != 5 or not parts[0]:
        raise ValueError(f"记录字段数量不正确: {line!r}")
    path, ctime, mtime, atime, crtime = parts
    return TimestampRecord(
        path=path,
        ctime=int(ctime),
        mtime=int(mtime),
        atime=int(atime),
        crtime=int(crtime),
    )


def write_records(path: Path, records: Iterable[TimestampRecord]) -> int:
    """写出记录文件，返回写入的条数"""
    count = 0
    with open(path, "w", encoding="utf-8", errors="surrogateescape", newline="\n") as f:
        for record in records:
            f.write(format_record(record) + "\n")
            count += 1
    logger.info(f"已写出 {count} 条时间戳记录到 {path}")
    return count


def read_records(path: Path) -> List[TimestampRecord]:
    """读取记录文件

    Raises:
        RecordListError: 文件无法打开或读取
    """
    records = []
    try:
        with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
            for line_no, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    records.append(parse_record(line))
                except ValueError as e:
                    logger.warning(f"跳过第 {line_no} 行: {e}")
    except OSError as e:
        raise RecordListError(f"无法读取记录文件 {path}: {e}") from e
    logger.info(f"从 {path} 读取到 {len(records)} 条时间戳记录")
    return records
