"""
容器取证镜像工具
把运行中容器的文件系统写入 ext4 磁盘镜像，并还原原始 MACB 时间戳
"""
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console

from macbt.config import MOUNTPOINT_DIRNAME, load_config, merge_overrides
from macbt.core.device import RESTORE_TOOLS, DebugfsEditor, ImageDevice, require_tools
from macbt.core.errors import MacbtError
from macbt.core.exporter import export_timestamps
from macbt.core.offset import compute_clock_offset
from macbt.core.pipeline import restore_attached
from macbt.core.records import write_records
from macbt.core.source import DockerSource
from macbt.core.verifier import snapshot
from macbt.display import (
    restore_progress,
    run_pipeline,
    show_export,
    show_summary,
    show_verification,
)
from macbt.interactive import run_interactive


def setup_logger(app_name="app", project_root=None, console_output=True):
    """配置 Loguru 日志系统

    Args:
        app_name: 应用名称，用于日志目录
        project_root: 项目根目录，默认为当前文件所在目录
        console_output: 是否输出到控制台，默认为True

    Returns:
        tuple: (logger, config_info)
            - logger: 配置好的 logger 实例
            - config_info: 包含日志配置信息的字典
    """
    if project_root is None:
        project_root = Path(__file__).parent.resolve()

    logger.remove()

    if console_output:
        logger.add(
            sys.stderr,
            level="INFO",
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
        )

    current_time = datetime.now()
    date_str = current_time.strftime("%Y-%m-%d")
    hour_str = current_time.strftime("%H")
    minute_str = current_time.strftime("%M%S")

    log_dir = os.path.join(project_root, "logs", app_name, date_str, hour_str)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"{minute_str}.log")

    logger.add(
        log_file,
        level="DEBUG",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss} | {elapsed} | {level: <8} | {name}:{function}:{line} - {message}",
        enqueue=True,
    )

    config_info = {
        'log_file': log_file,
    }

    logger.info(f"日志系统已初始化，应用名称: {app_name}")
    return logger, config_info


logger, config_info = setup_logger(app_name="macbt", console_output=True)

app = typer.Typer(help="容器取证镜像工具 - 保留原始 MACB 时间戳")
console = Console()


def fail(error: Exception):
    """输出致命错误并以非零状态退出"""
    logger.error(f"运行失败: {error}")
    console.print(f"[red]错误:[/red] {error}")
    raise typer.Exit(code=1)


@app.command()
def image(
    container: Optional[str] = typer.Argument(None, help="要制作镜像的容器名称"),
    verify_path: Optional[str] = typer.Option(None, "--verify-path", "-v", help="恢复前后对比元数据的路径"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出目录（运行开始时会被清空）"),
    size: Optional[int] = typer.Option(None, "--size", "-s", help="镜像大小 (MB)"),
    config: Optional[Path] = typer.Option(None, "--config", help="TOML 配置文件"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认"),
):
    """制作容器文件系统镜像并还原时间戳"""
    try:
        run_config = merge_overrides(load_config(config), {
            "container": container,
            "verification_path": verify_path,
            "output_dir": output,
            "image_size_mb": size,
        })
        run_config.validate()
    except (OSError, ValueError) as e:
        fail(e)

    if not yes and not typer.confirm(f"输出目录 {run_config.output_dir} 将被清空，确认继续？"):
        console.print("[yellow]操作已取消[/yellow]")
        return

    try:
        run_pipeline(run_config, console)
    except (MacbtError, ValueError) as e:
        fail(e)


@app.command()
def restore(
    image_path: Path = typer.Argument(..., help="已填充内容且未挂载的镜像文件"),
    records: Path = typer.Argument(..., help="时间戳记录文件"),
    offset: int = typer.Option(..., "--offset", help="源端时钟偏移（本地 - UTC，秒）"),
    verify_path: str = typer.Option("/etc/hosts", "--verify-path", "-v", help="恢复前后对比元数据的路径"),
):
    """只在已有镜像上重新执行时间戳恢复"""
    if not image_path.is_file():
        fail(FileNotFoundError(f"镜像文件不存在: {image_path}"))

    device = ImageDevice(image_path, image_path.parent / MOUNTPOINT_DIRNAME)
    try:
        require_tools(RESTORE_TOOLS)
        with restore_progress(console) as (on_start, on_progress):
            summary, report = restore_attached(
                device, records, offset, verify_path,
                on_start=on_start, on_progress=on_progress,
            )
    except MacbtError as e:
        fail(e)

    show_summary(console, summary)
    show_verification(console, report)


@app.command()
def verify(
    image_path: Path = typer.Argument(..., help="镜像文件"),
    path: str = typer.Argument("/etc/hosts", help="要查看的路径"),
):
    """查看镜像中某个路径的元数据"""
    if not image_path.is_file():
        fail(FileNotFoundError(f"镜像文件不存在: {image_path}"))

    device = ImageDevice(image_path, image_path.parent / MOUNTPOINT_DIRNAME)
    try:
        require_tools(RESTORE_TOOLS)
        loop_device = device.attach()
        try:
            result = snapshot(DebugfsEditor(loop_device), path)
        finally:
            device.detach()
    except MacbtError as e:
        fail(e)

    if not result.found:
        console.print(f"[yellow]{path}: File not found.[/yellow]")
        return
    console.print(result.raw, markup=False, highlight=False)


@app.command()
def export(
    container: str = typer.Argument(..., help="容器名称"),
    output: Path = typer.Option(Path("macb_list.txt"), "--output", "-o", help="记录文件路径"),
):
    """只导出容器的时钟偏移和 MACB 时间戳记录"""
    source = DockerSource(container)
    try:
        source.ensure_available()
        offset = compute_clock_offset(source)
        result = export_timestamps(source)
        write_records(output, result.records)
    except (MacbtError, OSError) as e:
        fail(e)

    show_export(console, offset, result)
    console.print(f"[green]记录已写入 {output}[/green]，恢复时使用 --offset {offset}")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """容器取证镜像工具主入口"""
    if ctx.invoked_subcommand is None:
        run_interactive()


if __name__ == "__main__":
    app()
