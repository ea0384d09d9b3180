"""
外部命令执行

所有外部工具（docker、dd、mkfs、losetup、mount、tar、debugfs）都通过这里同步调用，不设超时。
"""
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from loguru import logger

from .errors import CommandError


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str
    stderr: str


def run_command(
    args: Sequence[str],
    input: Optional[str] = None,
    check: bool = True,
    env: Optional[Dict[str, str]] = None,
) -> CommandResult:
    """执行外部命令并捕获输出

    Args:
        args: 命令及参数
        input: 写入标准输入的文本
        check: 为 True 时非零退出码抛出 CommandError
        env: 追加到当前环境变量的键值

    Returns:
        CommandResult: 退出码和输出
    """
    argv = [str(a) for a in args]
    logger.debug(f"执行命令: {' '.join(argv)}")
    try:
        completed = subprocess.run(
            argv,
            input=input,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="surrogateescape",
            env={**os.environ, **env} if env else None,
        )
    except OSError as e:
        raise CommandError(argv, 127, str(e)) from e

    result = CommandResult(argv, completed.returncode, completed.stdout or "", completed.stderr or "")
    if check and result.returncode != 0:
        raise CommandError(argv, result.returncode, result.stderr)
    return result


def missing_tools(tools: Iterable[str]) -> List[str]:
    """返回 PATH 中找不到的工具名"""
    return [tool for tool in tools if shutil.which(tool) is None]
