"""macbt 数据模型"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


@dataclass(frozen=True)
class TimestampRecord:
    """单个文件系统条目的原始 MACB 时间戳（源端本地时钟，未做偏移修正）"""
    path: str  # 源文件系统中的绝对路径
    ctime: int
    mtime: int
    atime: int
    crtime: int = 0  # 0 表示源文件系统不支持创建时间

    @property
    def relative_path(self) -> str:
        """去掉开头分隔符后的镜像内相对路径"""
        return self.path.lstrip("/")


@dataclass(frozen=True)
class AdjustedTimestamps:
    """修正到 UTC 后的四个时间戳"""
    ctime: int
    mtime: int
    atime: int
    crtime: int


@dataclass(frozen=True)
class ClockSample:
    """同一时刻采样的 UTC 纪元秒与本地墙钟字段"""
    epoch: int
    local_fields: tuple  # (year, month, day, hour, minute, second)


@dataclass(frozen=True)
class MountEntry:
    """源端挂载表中的一行"""
    device: str
    mountpoint: str
    fstype: str


@dataclass
class ExportResult:
    """导出结果"""
    records: List[TimestampRecord] = field(default_factory=list)
    skipped: int = 0  # 无法解析的行
    excluded: int = 0  # 位于伪文件系统挂载点下的条目
    duplicates: int = 0


class RestoreOutcome(str, Enum):
    """单个条目的恢复结果"""
    APPLIED = "applied"
    SKIPPED_MISSING = "skipped-missing"
    FAILED = "failed"


@dataclass
class EntryResult:
    path: str
    outcome: RestoreOutcome
    error: str = ""


@dataclass
class RestoreSummary:
    """恢复统计"""
    applied: int = 0
    skipped_missing: int = 0
    failed: int = 0
    failures: List[EntryResult] = field(default_factory=list)

    def add(self, result: EntryResult):
        if result.outcome is RestoreOutcome.APPLIED:
            self.applied += 1
        elif result.outcome is RestoreOutcome.SKIPPED_MISSING:
            self.skipped_missing += 1
        else:
            self.failed += 1
            self.failures.append(result)

    @property
    def total(self) -> int:
        return self.applied + self.skipped_missing + self.failed

    @property
    def nothing_restored(self) -> bool:
        return self.applied == 0


@dataclass
class MetadataSnapshot:
    """镜像中某个路径的元数据快照"""
    path: str
    found: bool
    raw: str = ""
    inode: Optional[int] = None
    times: Dict[str, int] = field(default_factory=dict)  # ctime/atime/mtime/crtime -> 纪元秒


@dataclass
class VerificationReport:
    """恢复前后的对比"""
    path: str
    before: MetadataSnapshot
    after: Optional[MetadataSnapshot] = None
