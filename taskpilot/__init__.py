# -*- coding: utf-8 -*-
"""
taskpilot - 对话式任务管理

- 按顺序匹配的正则意图识别
- tasks.json 存储，每个任务一个 Markdown 镜像
- TODO 扫描与需求文档拆解（需要时借助 LLM）
"""

__version__ = "0.1.0"
