# -*- coding: utf-8 -*-
"""
配置管理模块
"""
from .settings import (
    AppConfig,
    LLMConfig,
    TaskConfig,
    load_config,
)

__all__ = [
    'AppConfig',
    'LLMConfig',
    'TaskConfig',
    'load_config',
]
