"""
源环境（运行中的容器）

只提供流程需要的窄接口：存在性检查、在源端执行命令、时钟采样、挂载表读取。
"""
import re
from typing import List

from loguru import logger

from .commands import run_command
from .errors import CommandError, SourceUnavailable
from .models import ClockSample, MountEntry

# 一次 date 调用同时给出 UTC 纪元秒与本地墙钟字段，避免两次采样之间的间隔
CLOCK_QUERY = "date '+%s %Y %m %d %H %M %S'"
MOUNTS_QUERY = "cat /proc/self/mounts"

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def unescape_mount_field(value: str) -> str:
    """还原 /proc/mounts 中的八进制转义（例如 \\040 表示空格）"""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), value)


def parse_clock_output(output: str) -> ClockSample:
    """解析 CLOCK_QUERY 的输出"""
    parts = output.split()
    if len(parts) != 7:
        raise ValueError(f"无法解析时钟输出: {output!r}")
    numbers = [int(p) for p in parts]
    return ClockSample(epoch=numbers[0], local_fields=tuple(numbers[1:]))


def parse_mount_table(output: str) -> List[MountEntry]:
    """解析 /proc/self/mounts 格式的挂载表"""
    entries = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 3:
            continue
        entries.append(MountEntry(
            device=unescape_mount_field(fields[0]),
            mountpoint=unescape_mount_field(fields[1]),
            fstype=fields[2],
        ))
    return entries


class DockerSource:
    """通过 docker CLI 访问的容器"""

    def __init__(self, container: str, docker_binary: str = "docker"):
        self.container = container
        self.docker = docker_binary

    @property
    def name(self) -> str:
        return self.container

    def ensure_available(self):
        """确认容器存在，否则抛出 SourceUnavailable"""
        try:
            result = run_command([self.docker, "ps", "-a", "--format", "{{.Names}}"])
        except CommandError as e:
            raise SourceUnavailable(f"无法列出 Docker 容器: {e}") from e

        names = [line.strip() for line in result.stdout.splitlines()]
        if self.container not in names:
            raise SourceUnavailable(f"Docker 容器 '{self.container}' 不存在")
        logger.info(f"找到容器: {self.container}")

    def run(self, script: str, check: bool = True) -> str:
        """在容器内用 sh -c 执行脚本并返回标准输出"""
        try:
            result = run_command([self.docker, "exec", self.container, "sh", "-c", script], check=check)
        except CommandError as e:
            raise SourceUnavailable(f"无法在容器 '{self.container}' 中执行命令: {e}") from e
        return result.stdout

    def clock_sample(self) -> ClockSample:
        output = self.run(CLOCK_QUERY)
        try:
            return parse_clock_output(output)
        except ValueError as e:
            raise SourceUnavailable(str(e)) from e

    def mount_table(self) -> List[MountEntry]:
        return parse_mount_table(self.run(MOUNTS_QUERY))
