"""Tests for the timestamp exporter"""

from macbt.core.exporter import (
    DEFAULT_EXCLUDED_FSTYPES,
    EXPORT_SCRIPT,
    excluded_mountpoints,
    export_timestamps,
    is_below,
    parse_export_output,
)
from macbt.core.source import parse_mount_table


STAT_LINES = [
    "/|1700000000|1700000000|1700000000|0",
    "/etc|1700000100|1700000100|1700000100|0",
    "/etc/hosts|1700000200|1700000201|1700000202|1700000150",
    "/proc|1700000300|1700000300|1700000300|0",
    "/proc/1/status|1700000400|1700000400|1700000400|0",
    "/sys/kernel/mm|1700000500|1700000500|1700000500|0",
    "/dev/pts/0|1700000600|1700000600|1700000600|0",
    "/processes.txt|1700000700|1700000700|1700000700|0",
]


class TestExcludedMountpoints:
    """测试伪文件系统挂载点识别"""

    def test_only_pseudo_fstypes(self, proc_mounts):
        """测试只排除伪文件系统挂载点"""
        points = excluded_mountpoints(proc_mounts, DEFAULT_EXCLUDED_FSTYPES)
        assert points == ["/dev/pts", "/proc", "/sys"]

    def test_root_never_excluded(self):
        """测试根目录从不被排除"""
        mounts = parse_mount_table("proc / proc rw 0 0\n")
        assert excluded_mountpoints(mounts, DEFAULT_EXCLUDED_FSTYPES) == []

    def test_is_below_uses_path_boundary(self):
        """测试路径包含关系按目录边界判断"""
        assert is_below("/proc/1/status", ["/proc"])
        assert not is_below("/proc", ["/proc"])
        assert not is_below("/processes.txt", ["/proc"])


class TestParseExportOutput:
    """测试 stat 输出解析"""

    def test_keeps_walk_order(self):
        """测试保持遍历顺序"""
        result = parse_export_output("\n".join(STAT_LINES))
        assert [r.path for r in result.records] == [line.split("|")[0] for line in STAT_LINES]

    def test_skips_unreadable_entries(self):
        """测试跳过无法解析的行"""
        output = "/a|1|2|3|0\nstat: cannot stat '/gone': No such file or directory\n/b|1|2|3|0\n"
        result = parse_export_output(output)
        assert [r.path for r in result.records] == ["/a", "/b"]
        assert result.skipped == 1

    def test_duplicates_keep_first(self):
        """测试重复路径只保留第一条"""
        result = parse_export_output("/a|1|1|1|0\n/a|2|2|2|0\n")
        assert len(result.records) == 1
        assert result.records[0].ctime == 1
        assert result.duplicates == 1


class TestExportTimestamps:
    """测试完整导出"""

    def test_pseudo_filesystem_entries_never_emitted(self, make_source, proc_mounts):
        """测试伪文件系统下的条目不会输出"""
        source = make_source(stat_lines=STAT_LINES, mounts=proc_mounts)
        result = export_timestamps(source)

        paths = [r.path for r in result.records]
        assert "/proc/1/status" not in paths
        assert "/sys/kernel/mm" not in paths
        assert "/dev/pts/0" not in paths
        # 挂载点目录本身和名字相近的普通文件保留
        assert "/proc" in paths
        assert "/processes.txt" in paths
        assert result.excluded == 3

    def test_runs_single_device_walk(self, make_source):
        """测试只执行一次单设备遍历"""
        source = make_source(stat_lines=STAT_LINES)
        export_timestamps(source)
        assert source.scripts == [EXPORT_SCRIPT]
        assert "-xdev" in EXPORT_SCRIPT
        assert "%n|%Z|%Y|%X|%W" in EXPORT_SCRIPT

    def test_timestamps_are_not_offset_corrected(self, make_source):
        """测试导出的时间戳不做偏移修正"""
        source = make_source(stat_lines=["/etc/hosts|1000018000|1000018000|1000018000|0"], offset=18000)
        result = export_timestamps(source)
        assert result.records[0].mtime == 1000018000


class TestParseMountTable:
    """测试挂载表解析"""

    def test_unescapes_spaces(self):
        """测试还原挂载表中的转义空格"""
        mounts = parse_mount_table("tmpfs /mnt/my\\040dir tmpfs rw 0 0\n")
        assert mounts[0].mountpoint == "/mnt/my dir"
        assert mounts[0].fstype == "tmpfs"

    def test_ignores_short_lines(self):
        """测试忽略字段不足的行"""
        assert parse_mount_table("bogus\n\n") == []
