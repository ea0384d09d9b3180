"""
容器取证镜像工具包
制作容器文件系统的 ext4 镜像，并按源端时区偏移还原原始 MACB 时间戳
"""
from .config import RunConfig, load_config
from .core.errors import (
    MacbtError,
    SourceUnavailable,
    ImageProvisioningFailure,
    MaterializationFailure,
    RecordListError,
    InodeWriteFailure,
)
from .core.models import TimestampRecord, RestoreOutcome, RestoreSummary
from .core.offset import compute_clock_offset
from .core.exporter import export_timestamps
from .core.restorer import restore_timestamps, adjust_timestamps
from .core.pipeline import ImagingPipeline, restore_attached

__all__ = [
    # 配置
    'RunConfig',
    'load_config',
    # 核心流程
    'ImagingPipeline',
    'restore_attached',
    'compute_clock_offset',
    'export_timestamps',
    'restore_timestamps',
    'adjust_timestamps',
    # 数据模型
    'TimestampRecord',
    'RestoreOutcome',
    'RestoreSummary',
    # 异常
    'MacbtError',
    'SourceUnavailable',
    'ImageProvisioningFailure',
    'MaterializationFailure',
    'RecordListError',
    'InodeWriteFailure',
]
