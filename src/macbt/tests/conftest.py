"""
macbt 测试用的内存替身

外部工具（docker、debugfs、losetup 等）一律不在测试中执行。
"""
from datetime import datetime, timezone
from pathlib import Path

import pytest

from macbt.core.errors import (
    ImageProvisioningFailure,
    InodeWriteFailure,
    MaterializationFailure,
    SourceUnavailable,
)
from macbt.core.models import ClockSample, MountEntry

EXTRACTION_TIME = 1760000000  # 解压时写入的“当前时间”


def calendar_to_epoch(value: str) -> int:
    if value.startswith("@"):
        return int(value[1:])
    return int(datetime.strptime(value, "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc).timestamp())


def epoch_to_calendar(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y%m%d%H%M%S")


def clock_for_offset(epoch: int, offset: int) -> ClockSample:
    local = datetime.fromtimestamp(epoch + offset, tz=timezone.utc)
    return ClockSample(
        epoch=epoch,
        local_fields=(local.year, local.month, local.day, local.hour, local.minute, local.second),
    )


class FakeSource:
    """假的源环境：返回预先准备的 stat 输出、挂载表和时钟"""

    def __init__(self, stat_lines=(), mounts=(), offset=0, available=True, name="fake-container"):
        self.name = name
        self.stat_lines = list(stat_lines)
        self.mounts = list(mounts)
        self.offset = offset
        self.available = available
        self.scripts = []

    def ensure_available(self):
        if not self.available:
            raise SourceUnavailable(f"容器 '{self.name}' 不存在")

    def run(self, script, check=True):
        self.ensure_available()
        self.scripts.append(script)
        return "".join(line + "\n" for line in self.stat_lines)

    def clock_sample(self):
        self.ensure_available()
        return clock_for_offset(1700000000, self.offset)

    def mount_table(self):
        self.ensure_available()
        return list(self.mounts)


class FakeEditor:
    """假的 inode 编辑器：用字典保存每个路径的四个时间字段（debugfs 日历格式）"""

    def __init__(self, paths=(), fail_paths=(), unreadable=False):
        self.entries = {}
        self.fail_paths = set(fail_paths)
        self.unreadable = unreadable
        self.write_calls = []
        for path in paths:
            self.add(path)

    @staticmethod
    def _key(relative_path):
        return relative_path.lstrip("/") or "/"

    def add(self, path, epoch=EXTRACTION_TIME):
        value = epoch_to_calendar(epoch)
        self.entries[self._key(path)] = {name: value for name in ("ctime", "crtime", "mtime", "atime")}

    def epoch(self, path, name):
        return calendar_to_epoch(self.entries[self._key(path)][name])

    def check_open(self):
        if self.unreadable:
            raise ImageProvisioningFailure("模拟 debugfs 无法打开设备")

    def lookup(self, relative_path):
        keys = list(self.entries)
        key = self._key(relative_path)
        return keys.index(key) + 2 if key in self.entries else None

    def stat(self, relative_path):
        key = self._key(relative_path)
        if key not in self.entries:
            return None
        lines = [f"Inode: {self.lookup(relative_path)}   Type: regular    Mode:  0644   Flags: 0x80000"]
        for name in ("ctime", "atime", "mtime", "crtime"):
            epoch = calendar_to_epoch(self.entries[key][name])
            lines.append(f"{name:>6}: 0x{epoch & 0xffffffff:08x}:00000000 -- {self.entries[key][name]}")
        return "\n".join(lines) + "\n"

    def set_inode_fields(self, relative_path, fields):
        key = self._key(relative_path)
        self.write_calls.append((key, list(fields)))
        if key in self.fail_paths:
            raise InodeWriteFailure(relative_path, "模拟写入失败")
        for name, value in fields:
            self.entries[key][name] = value


class FakeDevice:
    """假的块设备：只记录调用顺序"""

    def __init__(self, image_path=Path("fake.img"), mounted=False):
        self.image_path = image_path
        self.mounted = mounted
        self.loop_device = None
        self.calls = []

    def release(self):
        self.calls.append("release")

    def create(self, size_mb):
        self.calls.append(f"create:{size_mb}")

    def format(self):
        self.calls.append("format")

    def mount(self):
        self.calls.append("mount")
        self.mounted = True

    def unmount(self):
        self.calls.append("unmount")
        self.mounted = False

    def is_mounted(self):
        return self.mounted

    def attach(self):
        self.calls.append("attach")
        self.loop_device = "/dev/loop-fake"
        return self.loop_device

    def detach(self):
        self.calls.append("detach")
        self.loop_device = None


class FakeMaterializer:
    """假的物化器：解压时把归档中的路径以当前时间加入镜像"""

    def __init__(self, image, archive_paths=(), fail_on=None):
        self.image = image
        self.archive_paths = list(archive_paths)
        self.fail_on = fail_on

    def export_archive(self, container, archive_path):
        if self.fail_on == "export":
            raise MaterializationFailure("模拟导出失败")
        Path(archive_path).write_bytes(b"")

    def extract_archive(self, archive_path, target_dir):
        if self.fail_on == "extract":
            raise MaterializationFailure("模拟解压失败")
        for path in self.archive_paths:
            self.image.add(path)


@pytest.fixture
def fake_editor():
    return FakeEditor()


@pytest.fixture
def proc_mounts():
    return [
        MountEntry("overlay", "/", "overlay"),
        MountEntry("proc", "/proc", "proc"),
        MountEntry("sysfs", "/sys", "sysfs"),
        MountEntry("devpts", "/dev/pts", "devpts"),
        MountEntry("/dev/sda1", "/etc/hosts", "ext4"),
    ]


@pytest.fixture
def make_source():
    return FakeSource


@pytest.fixture
def make_editor():
    return FakeEditor


@pytest.fixture
def make_device():
    return FakeDevice


@pytest.fixture
def make_materializer():
    return FakeMaterializer
