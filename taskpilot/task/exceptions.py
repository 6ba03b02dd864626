# -*- coding: utf-8 -*-
"""
任务模块异常定义
"""
from typing import Optional


class TaskError(Exception):
    """任务操作异常基类"""
    pass


class TaskNotFoundError(TaskError):
    """任务 ID 不存在"""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found in your task collection")
        self.task_id = task_id


class MissingParameterError(TaskError):
    """无法从用户输入中解析出必需的参数"""

    def __init__(self, parameter: str, hint: str = ""):
        message = f"Missing required parameter: {parameter}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)
        self.parameter = parameter
        self.hint = hint


class StoreAccessError(TaskError):
    """
    文件系统拒绝读写

    初始化阶段抛出时，stage 为 STAGE_* 常量之一
    """

    STAGE_RESOLVE_PATHS = "resolve-paths"
    STAGE_CREATE_DIRECTORY = "create-directory"
    STAGE_WRITE_FILE = "write-file"
    STAGE_READ_FILE = "read-file"

    def __init__(self, message: str, path: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.stage = stage


class EnrichmentError(TaskError):
    """任务无法补充上下文（没有可用的来源信息）"""
    pass


class DocumentReadError(TaskError):
    """需求文档无法读取"""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not read {path}: {reason}")
        self.path = path
        self.reason = reason
