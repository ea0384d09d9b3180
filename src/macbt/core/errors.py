"""
macbt 异常定义

致命类别会中止整个流程；InodeWriteFailure 只影响单个条目，由恢复器捕获并计数。
"""
from typing import Sequence


class MacbtError(Exception):
    """macbt 所有异常的基类"""


class SourceUnavailable(MacbtError):
    """源环境（容器）不存在或无法查询"""


class ImageProvisioningFailure(MacbtError):
    """镜像文件创建、格式化、挂载或环回设备挂接失败"""


class MaterializationFailure(MacbtError):
    """归档导出或解压失败"""


class RecordListError(MacbtError):
    """时间戳记录文件无法打开或读取"""


class InodeWriteFailure(MacbtError):
    """单个 inode 元数据写入失败"""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class CommandError(Exception):
    """外部命令以非零状态退出"""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"命令 '{' '.join(self.argv)}' 退出码 {returncode}{detail}")
