"""
macbt 交互式界面
"""
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from .config import RunConfig, load_config, merge_overrides
from .core.errors import MacbtError
from .display import run_pipeline


class InteractiveUI:
    """交互式用户界面类"""

    def __init__(self, console: Console = None, config: Optional[RunConfig] = None):
        self.console = console or Console()
        self.defaults = config or RunConfig()

    def ask_config(self) -> Optional[RunConfig]:
        """逐项询问运行参数，容器名为空时返回 None"""
        container = Prompt.ask("容器名称", default=self.defaults.container or None)
        if not container:
            return None
        verification_path = Prompt.ask("校验路径", default=self.defaults.verification_path)
        output_dir = Prompt.ask("输出目录", default=str(self.defaults.output_dir))
        image_size_mb = IntPrompt.ask("镜像大小 (MB)", default=self.defaults.image_size_mb)

        return merge_overrides(self.defaults, {
            "container": container.strip(),
            "verification_path": verification_path.strip(),
            "output_dir": Path(output_dir.strip()),
            "image_size_mb": image_size_mb,
        })

    def show_config(self, config: RunConfig):
        table = Table(title="运行参数")
        table.add_column("选项", style="cyan")
        table.add_column("值", style="green")
        table.add_row("容器", config.container)
        table.add_row("校验路径", config.verification_path)
        table.add_row("输出目录", str(config.output_dir))
        table.add_row("镜像大小", f"{config.image_size_mb} MB")
        table.add_row("镜像文件", str(config.image_path))
        self.console.print(table)

    def run_interactive(self):
        """运行完整的交互式流程"""
        self.console.print(Panel.fit(
            "[bold blue]容器取证镜像工具[/bold blue]\n\n"
            "把容器文件系统写入 ext4 磁盘镜像，并还原原始 MACB 时间戳\n"
            "需要 root 权限以及 docker、debugfs、losetup 等工具",
            title="🕒 macbt",
            border_style="blue"
        ))

        try:
            config = self.ask_config()
            if config is None:
                self.console.print("[yellow]未输入容器名称，操作取消[/yellow]")
                return None

            self.show_config(config)
            if not Confirm.ask(f"\n[bold]输出目录 {config.output_dir} 将被清空，确认继续吗？[/bold]", default=False):
                self.console.print("[yellow]操作已取消[/yellow]")
                return None

            return run_pipeline(config, self.console)

        except KeyboardInterrupt:
            self.console.print("\n[yellow]操作已取消[/yellow]")
        except (MacbtError, ValueError) as e:
            self.console.print(f"\n[red]错误:[/red] {e}")
            logger.error(f"交互式流程失败: {e}")
        return None


def run_interactive(config_path: Optional[Path] = None):
    """启动交互式界面"""
    console = Console()
    try:
        config = load_config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]配置错误:[/red] {e}")
        logger.error(f"加载配置失败: {e}")
        return None
    ui = InteractiveUI(console=console, config=config)
    return ui.run_interactive()
