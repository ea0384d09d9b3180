"""
源端时钟偏移计算

offset = 源端本地时间 - UTC 时间（秒）
"""
import calendar

from loguru import logger

from .models import ClockSample


def offset_from_sample(sample: ClockSample) -> int:
    """把本地墙钟字段按 UTC 解释后减去纪元秒"""
    year, month, day, hour, minute, second = sample.local_fields
    local_as_utc = calendar.timegm((year, month, day, hour, minute, second, 0, 0, 0))
    return local_as_utc - sample.epoch


def compute_clock_offset(source) -> int:
    """
    计算源环境的时钟偏移

    参数:
        source: 提供 clock_sample() 的源环境

    返回:
        int: 有符号秒数，源不可用时 clock_sample() 抛出 SourceUnavailable
    """
    sample = source.clock_sample()
    offset = offset_from_sample(sample)
    logger.info(f"源环境时区偏移: {offset} 秒（相对 UTC）")
    return offset
