# -*- coding: utf-8 -*-
"""
通用辅助函数
"""
from datetime import datetime


def format_timestamp(value: datetime | str | None = None, fmt: str = "%Y-%m-%d %H:%M") -> str:
    """
    格式化时间戳

    Args:
        value: 时间对象或 ISO 8601 字符串（允许 Z 结尾），默认为当前时间
        fmt: 格式字符串

    Returns:
        格式化后的时间字符串；空字符串原样返回，无法解析的字符串也原样返回
    """
    if value is None:
        value = datetime.now()
    if isinstance(value, str):
        if not value:
            return ""
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value.strftime(fmt)


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    压成单行并截断

    Args:
        text: 原始文本，换行与连续空白会合并为一个空格
        max_length: 最大长度（含后缀）
        suffix: 截断后缀

    Returns:
        截断后的文本
    """
    text = " ".join((text or "").split())
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix
