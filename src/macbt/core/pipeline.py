"""
镜像流程编排

严格顺序执行：时钟偏移 -> 导出时间戳 -> 创建镜像并物化内容 -> 卸载
-> 校验(前) -> 恢复时间戳 -> 校验(后)。
"""
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from ..config import RunConfig
from .commands import missing_tools
from .device import REQUIRED_TOOLS, DebugfsEditor, ImageDevice
from .errors import ImageProvisioningFailure
from .exporter import export_timestamps
from .materialize import DockerArchiveMaterializer
from .models import EntryResult, ExportResult, RestoreSummary, VerificationReport
from .offset import compute_clock_offset
from .records import read_records, write_records
from .restorer import restore_timestamps
from .source import DockerSource
from .verifier import snapshot


@dataclass
class PipelineResult:
    """一次完整运行的结果"""
    image_path: Path
    offset: int = 0
    export: ExportResult = field(default_factory=ExportResult)
    summary: RestoreSummary = field(default_factory=RestoreSummary)
    report: Optional[VerificationReport] = None


def restore_attached(
    device,
    records_path: Path,
    offset: int,
    verification_path: str,
    editor_factory: Callable = DebugfsEditor,
    on_start: Optional[Callable[[int], None]] = None,
    on_progress: Optional[Callable[[EntryResult], None]] = None,
):
    """
    在未挂载的镜像上执行 校验(前) -> 恢复 -> 校验(后)

    返回:
        (RestoreSummary, VerificationReport)
    """
    if device.is_mounted():
        raise ImageProvisioningFailure(f"镜像仍处于挂载状态，无法直接编辑 inode: {device.image_path}")

    records = read_records(records_path)
    loop_device = device.attach()
    try:
        editor = editor_factory(loop_device)
        editor.check_open()
        logger.info(f"获取 '{verification_path}' 恢复前的时间戳...")
        report = VerificationReport(path=verification_path, before=snapshot(editor, verification_path))

        logger.info("按时区偏移把原始时间戳写回镜像...")
        if on_start:
            on_start(len(records))
        summary = restore_timestamps(records, offset, editor, on_progress=on_progress)

        logger.info(f"获取 '{verification_path}' 恢复后的时间戳...")
        report.after = snapshot(editor, verification_path)
    finally:
        device.detach()
    return summary, report


class ImagingPipeline:
    """容器文件系统取证镜像流程"""

    def __init__(
        self,
        config: RunConfig,
        source=None,
        device=None,
        materializer=None,
        editor_factory: Callable = DebugfsEditor,
        check_tools: bool = True,
    ):
        self.config = config
        self.source = source or DockerSource(config.container, config.docker_binary)
        self.device = device or ImageDevice(config.image_path, config.mountpoint)
        self.materializer = materializer or DockerArchiveMaterializer(config.docker_binary)
        self.editor_factory = editor_factory
        self.check_tools = check_tools

    def check_host_tools(self):
        missing = missing_tools(REQUIRED_TOOLS)
        if missing:
            raise ImageProvisioningFailure(f"缺少必要的工具: {', '.join(missing)}")

    def prepare_output(self):
        """清理上一次运行的产物并重建输出目录"""
        logger.info("清理上一次运行的产物并准备目录...")
        self.device.release()
        output_dir = Path(self.config.output_dir)
        try:
            if output_dir.exists():
                shutil.rmtree(output_dir)
            self.config.mountpoint.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ImageProvisioningFailure(f"无法重建输出目录 {output_dir}: {e}") from e

    def materialize(self):
        """创建镜像并填充容器内容，结束时镜像处于卸载状态"""
        self.device.create(self.config.image_size_mb)
        self.device.format()
        self.materializer.export_archive(self.config.container, self.config.archive_path)

        logger.info("挂载镜像并解压归档...")
        self.device.mount()
        try:
            self.materializer.extract_archive(self.config.archive_path, self.config.mountpoint)
        finally:
            logger.info("内容解压完成，卸载镜像以便写入时间戳")
            self.device.unmount()

    def run(
        self,
        on_start: Optional[Callable[[int], None]] = None,
        on_progress: Optional[Callable[[EntryResult], None]] = None,
    ) -> PipelineResult:
        """
        执行完整流程

        致命错误（SourceUnavailable、ImageProvisioningFailure、MaterializationFailure、
        RecordListError）直接向上抛出；单个条目的失败只体现在统计中。
        """
        self.config.validate()
        if self.check_tools:
            self.check_host_tools()

        logger.info(f"检查容器 '{self.config.container}'...")
        self.source.ensure_available()
        self.prepare_output()

        result = PipelineResult(image_path=self.config.image_path)
        result.offset = compute_clock_offset(self.source)

        result.export = export_timestamps(self.source, self.config.excluded_fstypes)
        write_records(self.config.records_path, result.export.records)

        self.materialize()

        result.summary, result.report = restore_attached(
            self.device,
            self.config.records_path,
            result.offset,
            self.config.verification_path,
            editor_factory=self.editor_factory,
            on_start=on_start,
            on_progress=on_progress,
        )
        logger.info(f"完成，最终镜像位于: {self.config.image_path}")
        return result
