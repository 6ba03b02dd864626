# -*- coding: utf-8 -*-
"""
任务管理系统

- tasks.json 存储与 Markdown 镜像
- 优先级 / 状态定义
- TODO 扫描、需求提取、任务拆分、上下文补充
"""
from .types import Task, TaskCollection, TaskPriority, TaskStatus
from .store import TaskStore, WorkspacePaths
from .manager import TaskManager

__all__ = [
    'Task',
    'TaskCollection',
    'TaskPriority',
    'TaskStatus',
    'TaskStore',
    'WorkspacePaths',
    'TaskManager',
]
