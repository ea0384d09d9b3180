"""
块设备镜像与 inode 元数据编辑

ImageDevice 负责镜像文件的创建、格式化、挂载和环回设备挂接；
DebugfsEditor 在未挂载的设备上用 debugfs 直接读写 inode 字段，绕过内核的时间戳更新。
"""
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import psutil
from loguru import logger

from .commands import missing_tools, run_command
from .errors import CommandError, ImageProvisioningFailure, InodeWriteFailure

# ext4 以外的文件系统没有 crtime 字段，debugfs 也只支持 ext2/3/4
FILESYSTEM_TYPE = "ext4"
REQUIRED_TOOLS = ("dd", "mkfs.ext4", "losetup", "mount", "umount", "tar", "debugfs")
RESTORE_TOOLS = ("losetup", "debugfs")

_INODE_LINE = re.compile(r"^Inode:\s+(\d+)", re.MULTILINE)
# 路径不存在时 debugfs 的报错；其他 stderr 说明设备本身无法打开
_NOT_FOUND = "File not found by ext2_lookup"
# debugfs 启动时向 stderr 打印版本横幅，例如 "debugfs 1.47.0 (5-Feb-2023)"
_BANNER = re.compile(r"^debugfs \d+\.\d+")


class ImageDevice:
    """镜像文件及其挂载点、环回设备"""

    def __init__(self, image_path: Path, mountpoint: Path):
        self.image_path = Path(image_path)
        self.mountpoint = Path(mountpoint)
        self.loop_device: Optional[str] = None

    def _run(self, args: Sequence[str], action: str):
        try:
            return run_command(args)
        except CommandError as e:
            raise ImageProvisioningFailure(f"{action}失败: {e}") from e

    def create(self, size_mb: int):
        """创建全零填充的镜像文件"""
        logger.info(f"创建 {size_mb}MB 磁盘镜像: {self.image_path}")
        self._run(
            ["dd", "if=/dev/zero", f"of={self.image_path}", "bs=1M", f"count={size_mb}", "status=none"],
            "创建镜像文件",
        )

    def format(self):
        logger.info(f"格式化镜像为 {FILESYSTEM_TYPE} 文件系统...")
        self._run([f"mkfs.{FILESYSTEM_TYPE}", "-F", "-q", str(self.image_path)], "格式化镜像")

    def mount(self):
        self.mountpoint.mkdir(parents=True, exist_ok=True)
        self._run(["mount", "-o", "loop", str(self.image_path), str(self.mountpoint)], "挂载镜像")

    def unmount(self):
        self._run(["umount", str(self.mountpoint)], "卸载镜像")

    def is_mounted(self) -> bool:
        """挂载点或挂接该镜像的环回设备当前是否被挂载"""
        target = str(self.mountpoint.resolve())
        loops = set(self.attached_loops())
        return any(
            part.mountpoint == target or part.device in loops
            for part in psutil.disk_partitions(all=True)
        )

    def attach(self) -> str:
        """把镜像挂接到下一个空闲的环回设备"""
        result = self._run(["losetup", "-f", "--show", str(self.image_path)], "挂接环回设备")
        self.loop_device = result.stdout.strip()
        if not self.loop_device:
            raise ImageProvisioningFailure("losetup 未返回环回设备")
        logger.info(f"镜像已挂接到 {self.loop_device}")
        return self.loop_device

    def detach(self):
        if not self.loop_device:
            return
        logger.info(f"分离环回设备 {self.loop_device}...")
        self._run(["losetup", "-d", self.loop_device], "分离环回设备")
        self.loop_device = None

    def attached_loops(self) -> List[str]:
        """列出当前挂接着该镜像的环回设备"""
        if not self.image_path.exists():
            return []
        try:
            result = run_command(["losetup", "-j", str(self.image_path)], check=False)
        except CommandError as e:
            raise ImageProvisioningFailure(f"无法查询环回设备: {e}") from e
        return [line.split(":", 1)[0] for line in result.stdout.splitlines() if ":" in line]

    def release(self):
        """清理上一次运行遗留的挂载和环回设备"""
        if self.mountpoint.exists() and self.is_mounted():
            logger.info(f"卸载遗留挂载点 {self.mountpoint}")
            self._run(["umount", str(self.mountpoint)], "卸载遗留挂载点")
        for loop in self.attached_loops():
            logger.info(f"分离遗留环回设备 {loop}")
            self._run(["losetup", "-d", loop], "分离遗留环回设备")


def require_tools(tools: Sequence[str]):
    """确认外部工具都在 PATH 中，否则抛出 ImageProvisioningFailure"""
    missing = missing_tools(tools)
    if missing:
        raise ImageProvisioningFailure(f"缺少必要的工具: {', '.join(missing)}")


def debugfs_path(relative_path: str) -> str:
    """生成 debugfs 命令中使用的带引号路径；空路径对应根目录"""
    path = relative_path or "/"
    if '"' in path or "\n" in path:
        raise InodeWriteFailure(path, "debugfs 无法引用包含双引号或换行的路径")
    return f'"{path}"'


class DebugfsEditor:
    """通过 debugfs 读写未挂载设备上的 inode 元数据"""

    def __init__(self, device: str, debugfs_binary: str = "debugfs"):
        self.device = device
        self.debugfs = debugfs_binary

    def _query(self, request: str):
        """执行只读的 debugfs -R 请求，返回结果和去掉版本横幅后的 stderr 行"""
        try:
            result = run_command(
                [self.debugfs, "-R", request, self.device],
                check=False,
                env={"DEBUGFS_PAGER": "__none__"},
            )
        except CommandError as e:
            raise ImageProvisioningFailure(f"无法运行 debugfs: {e}") from e
        errors = [
            line for line in result.stderr.splitlines()
            if line.strip() and not _BANNER.match(line)
        ]
        return result, errors

    def check_open(self):
        """确认 debugfs 能打开设备并读出超级块"""
        result, errors = self._query("stats")
        if result.returncode != 0 or "Block count:" not in result.stdout:
            detail = "; ".join(errors) or f"退出码 {result.returncode}"
            raise ImageProvisioningFailure(f"debugfs 无法打开 {self.device}: {detail}")

    def stat(self, relative_path: str) -> Optional[str]:
        """
        返回 debugfs stat 的原始输出，路径不存在时返回 None

        Raises:
            ImageProvisioningFailure: debugfs 无法运行或无法打开设备
        """
        result, errors = self._query(f"stat {debugfs_path(relative_path)}")
        if _INODE_LINE.search(result.stdout):
            return result.stdout
        if any(_NOT_FOUND in line for line in errors):
            return None
        detail = "; ".join(errors) or f"退出码 {result.returncode}"
        raise ImageProvisioningFailure(f"debugfs 无法读取 {self.device}: {detail}")

    def lookup(self, relative_path: str) -> Optional[int]:
        """返回路径对应的 inode 号"""
        raw = self.stat(relative_path)
        if raw is None:
            return None
        return int(_INODE_LINE.search(raw).group(1))

    def set_inode_fields(self, relative_path: str, fields: List[Tuple[str, str]]):
        """
        在一次 debugfs -w 会话中写入同一 inode 的多个字段

        Raises:
            InodeWriteFailure: debugfs 退出码非零或报告了错误
        """
        target = debugfs_path(relative_path)
        script = "".join(f"set_inode_field {target} {name} {value}\n" for name, value in fields)
        try:
            result = run_command([self.debugfs, "-w", "-f", "-", self.device], input=script, check=False)
        except CommandError as e:
            raise InodeWriteFailure(relative_path, str(e)) from e

        errors = [
            line for line in result.stderr.splitlines()
            if line.strip() and not _BANNER.match(line)
        ]
        if result.returncode != 0 or errors:
            raise InodeWriteFailure(relative_path, "; ".join(errors) or f"退出码 {result.returncode}")
