"""
内容物化：docker export 生成 tar 归档，再解压进镜像挂载点

解压产生的时间戳只是临时值，之后由恢复器覆盖。
"""
from pathlib import Path

from loguru import logger

from .commands import run_command
from .errors import CommandError, MaterializationFailure


class DockerArchiveMaterializer:
    """基于 docker export 与 tar 的物化器"""

    def __init__(self, docker_binary: str = "docker", tar_binary: str = "tar"):
        self.docker = docker_binary
        self.tar = tar_binary

    def export_archive(self, container: str, archive_path: Path):
        """把容器文件系统导出为平面 tar 归档"""
        logger.info(f"导出容器文件系统到 {archive_path}...")
        try:
            run_command([self.docker, "export", container, "-o", str(archive_path)])
        except CommandError as e:
            raise MaterializationFailure(f"导出容器 '{container}' 失败: {e}") from e
        if not Path(archive_path).is_file():
            raise MaterializationFailure(f"归档文件未生成: {archive_path}")

    def extract_archive(self, archive_path: Path, target_dir: Path):
        """解压归档到目标目录，保留权限与数字属主"""
        logger.info(f"解压 {archive_path} 到 {target_dir}...")
        try:
            run_command([
                self.tar, "--numeric-owner", "-xpf", str(archive_path), "-C", str(target_dir),
            ])
        except CommandError as e:
            raise MaterializationFailure(f"解压归档失败: {e}") from e
