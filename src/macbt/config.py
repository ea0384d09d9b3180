"""
运行配置

所有产物路径都从 output_dir 派生，可选的 macbt.toml 提供默认值，命令行参数优先。
"""
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import tomli

from .core.exporter import DEFAULT_EXCLUDED_FSTYPES

CONFIG_FILENAME = "macbt.toml"
CONFIG_SECTION = "macbt"

# 产物文件名
IMAGE_FILENAME = "docker-container.img"
ARCHIVE_FILENAME = "rootfs.tar"
RECORDS_FILENAME = "macb_list.txt"
MOUNTPOINT_DIRNAME = "mountpoint"


@dataclass
class RunConfig:
    """一次镜像运行的全部参数"""
    container: str = ""
    verification_path: str = "/etc/hosts"  # 容器中一定存在的文件
    output_dir: Path = Path("./forensic_image_output")
    image_size_mb: int = 2048
    excluded_fstypes: Tuple[str, ...] = DEFAULT_EXCLUDED_FSTYPES
    docker_binary: str = "docker"

    @property
    def image_path(self) -> Path:
        return self.output_dir / IMAGE_FILENAME

    @property
    def archive_path(self) -> Path:
        return self.output_dir / ARCHIVE_FILENAME

    @property
    def records_path(self) -> Path:
        return self.output_dir / RECORDS_FILENAME

    @property
    def mountpoint(self) -> Path:
        return self.output_dir / MOUNTPOINT_DIRNAME

    def validate(self):
        if not self.container:
            raise ValueError("未指定容器名称")
        if self.image_size_mb <= 0:
            raise ValueError(f"镜像大小必须为正数: {self.image_size_mb}")
        if not self.verification_path.startswith("/"):
            raise ValueError(f"校验路径必须是绝对路径: {self.verification_path}")


def _coerce(name: str, value: Any) -> Any:
    if name == "output_dir":
        return Path(value)
    if name == "image_size_mb":
        return int(value)
    if name == "excluded_fstypes":
        return tuple(value)
    return value


def load_config(config_path: Optional[Path] = None) -> RunConfig:
    """
    读取 TOML 配置文件

    参数:
        config_path: 配置文件路径；为 None 时尝试当前目录下的 macbt.toml

    返回:
        RunConfig: 文件不存在（且未显式指定）时返回默认配置
    """
    if config_path is None:
        config_path = Path(CONFIG_FILENAME)
        if not config_path.exists():
            return RunConfig()

    with open(config_path, "rb") as f:
        data = tomli.load(f)

    section = data.get(CONFIG_SECTION, {})
    known = {f.name for f in fields(RunConfig)}
    unknown = set(section) - known
    if unknown:
        raise ValueError(f"配置文件包含未知选项: {', '.join(sorted(unknown))}")

    return RunConfig(**{name: _coerce(name, value) for name, value in section.items()})


def merge_overrides(config: RunConfig, overrides: Dict[str, Any]) -> RunConfig:
    """用非 None 的命令行参数覆盖配置"""
    values = {name: _coerce(name, value) for name, value in overrides.items() if value is not None}
    return replace(config, **values)
