"""
终端输出：进度条、恢复统计和校验对比
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .config import RunConfig
from .core.models import ExportResult, RestoreSummary, VerificationReport
from .core.pipeline import ImagingPipeline, PipelineResult
from .core.verifier import TIME_FIELDS


def format_epoch(epoch: Optional[int]) -> str:
    if epoch is None:
        return "-"
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@contextmanager
def restore_progress(console: Console):
    """
    提供 (on_start, on_progress) 两个回调，驱动恢复阶段的进度条
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("恢复时间戳...", total=None)

        def on_start(total: int):
            progress.update(task, total=total)

        def on_progress(result):
            progress.advance(task)

        yield on_start, on_progress


def show_export(console: Console, offset: int, export: ExportResult):
    console.print(f"[cyan]时区偏移: {offset} 秒[/cyan]")
    console.print(f"[cyan]导出记录: {len(export.records)}[/cyan]")
    if export.skipped:
        console.print(f"[yellow]无法读取的条目: {export.skipped}[/yellow]")
    if export.excluded:
        console.print(f"[dim]排除伪文件系统条目: {export.excluded}[/dim]")


def show_summary(console: Console, summary: RestoreSummary):
    """显示恢复统计；区分“没有任何条目被恢复”和“部分条目被跳过”"""
    body = (
        f"[green]成功恢复: {summary.applied}[/green]\n"
        f"[yellow]镜像中不存在（已跳过）: {summary.skipped_missing}[/yellow]\n"
        f"[red]写入失败: {summary.failed}[/red]"
    )
    if summary.nothing_restored:
        console.print(Panel.fit(body, title="⚠️ 没有恢复任何时间戳", border_style="red"))
    else:
        console.print(Panel.fit(body, title="📊 处理结果", border_style="green"))

    if summary.failures:
        table = Table(title="写入失败的条目")
        table.add_column("路径", style="yellow", max_width=60)
        table.add_column("原因", style="red")
        for item in summary.failures[:10]:
            table.add_row(item.path, item.error)
        if len(summary.failures) > 10:
            table.add_row("...", f"还有 {len(summary.failures) - 10} 个")
        console.print(table)


def show_verification(console: Console, report: Optional[VerificationReport]):
    if report is None:
        return
    if not report.before.found:
        console.print(f"[yellow]校验路径 {report.path} 在镜像中不存在[/yellow]")
        return

    after = report.after
    table = Table(title=f"校验: {report.path}")
    table.add_column("字段", style="cyan")
    table.add_column("恢复前（tar 解压）", style="yellow")
    table.add_column("恢复后", style="green")
    for name in TIME_FIELDS:
        table.add_row(
            name,
            format_epoch(report.before.times.get(name)),
            format_epoch(after.times.get(name)) if after else "-",
        )
    console.print(table)

    console.print(f"\n--- 恢复前（来自 tar 解压） ---\n{report.before.raw}", markup=False, highlight=False)
    if after:
        console.print(f"\n--- 恢复后（按容器时间还原） ---\n{after.raw}", markup=False, highlight=False)


def run_pipeline(config: RunConfig, console: Console, pipeline_factory=ImagingPipeline) -> PipelineResult:
    """执行完整流程并输出结果，致命错误原样抛出"""
    pipeline = pipeline_factory(config)
    with restore_progress(console) as (on_start, on_progress):
        result = pipeline.run(on_start=on_start, on_progress=on_progress)

    show_export(console, result.offset, result.export)
    show_summary(console, result.summary)
    show_verification(console, result.report)
    console.print(f"\n[bold green]完成，镜像位于: {result.image_path}[/bold green]")
    return result
