# -*- coding: utf-8 -*-
"""
工具函数
"""

from .helpers import format_timestamp, truncate_text

__all__ = [
    'format_timestamp',
    'truncate_text',
]
