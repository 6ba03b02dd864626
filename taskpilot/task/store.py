# -*- coding: utf-8 -*-
"""
任务存储

读写工作区的任务集合（tasks.json）并分配递增的任务 ID。
JSON 文件是唯一的数据来源，每次修改都整文件读取、修改、写回，后写入者覆盖先写入者。
"""
from __future__ import annotations
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import StoreAccessError
from .types import Task, TaskCollection

logger = logging.getLogger('task.store')

TASK_ID_PATTERN = re.compile(r'TASK-(\d+)', re.IGNORECASE)
TASKS_FILE_NAME = "tasks.json"


def extract_task_number(task_id: str) -> int:
    """
    提取任务 ID 中的数字部分

    Args:
        task_id: 如 "TASK-042"

    Returns:
        42；不符合 TASK-<n> 格式时返回 0
    """
    match = TASK_ID_PATTERN.search(task_id or "")
    if match:
        return int(match.group(1))
    return 0


def find_highest_task_number(tasks: list[Task]) -> int:
    """任务中最大的 TASK-<n> 编号，没有时返回 0"""
    highest = 0
    for task in tasks:
        number = extract_task_number(task.id)
        if number > highest:
            highest = number
    return highest


def generate_task_id(collection: Optional[TaskCollection] = None) -> str:
    """
    分配下一个递增的任务 ID

    Args:
        collection: 已有任务，新 ID 接在最大编号之后

    Returns:
        "TASK-001"、"TASK-006" 等，至少补齐三位
    """
    next_number = 1
    if collection is not None:
        next_number = find_highest_task_number(collection.tasks) + 1

    digits = max(3, len(str(next_number)))
    return f"TASK-{next_number:0{digits}d}"


@dataclass
class WorkspacePaths:
    """工作区内的各路径"""
    workspace_root: Path
    tasks_dir: Path
    tasks_json: Path

    @classmethod
    def resolve(cls, workspace_root: str | Path, tasks_location: str = "tasks") -> "WorkspacePaths":
        root = Path(workspace_root).expanduser().resolve()
        tasks_dir = root / tasks_location
        return cls(
            workspace_root=root,
            tasks_dir=tasks_dir,
            tasks_json=tasks_dir / TASKS_FILE_NAME,
        )

    def relative(self, path: str | Path) -> str:
        """相对工作区的 POSIX 路径，不在工作区内时原样返回"""
        path = Path(path)
        try:
            return path.resolve().relative_to(self.workspace_root).as_posix()
        except ValueError:
            return path.as_posix()


class TaskStore:
    """
    任务集合读写

    - read_collection: 尽量恢复而不报错（文件缺失或损坏时返回空集合）
    - write_collection: 两空格缩进的 UTF-8 JSON，自动创建父目录
    """

    def __init__(self, paths: WorkspacePaths):
        self.paths = paths

    @property
    def path(self) -> Path:
        return self.paths.tasks_json

    def exists(self) -> bool:
        return self.path.exists()

    def read_collection(self) -> TaskCollection:
        """
        加载任务集合

        Returns:
            已保存的集合；文件缺失或无法解析时返回新的空集合

        Raises:
            StoreAccessError: 文件存在但操作系统拒绝读取
        """
        try:
            content = self.path.read_text(encoding='utf-8')
        except FileNotFoundError:
            logger.debug(f"{self.path} not found, using a new collection")
            return TaskCollection()
        except UnicodeDecodeError as e:
            logger.debug(f"{self.path} is not valid UTF-8 ({e}), using a new collection")
            return TaskCollection()
        except OSError as e:
            logger.error(f"Failed to read {self.path}: {e}")
            raise StoreAccessError(
                f"Failed to read {self.path.name}: {e}",
                path=str(self.path),
                stage=StoreAccessError.STAGE_READ_FILE,
            ) from e

        try:
            return TaskCollection.from_dict(json.loads(content))
        except (ValueError, KeyError, TypeError) as e:
            logger.debug(f"Could not parse {self.path} ({e}), using a new collection")
            return TaskCollection()

    def write_collection(self, collection: TaskCollection):
        """
        保存整个集合

        Raises:
            StoreAccessError: 创建目录或写入失败
        """
        content = json.dumps(collection.to_dict(), indent=2, ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(content, encoding='utf-8')
        except OSError as e:
            logger.error(f"Failed to write {self.path}: {e}")
            raise StoreAccessError(
                f"Failed to write {self.path.name}: {e}",
                path=str(self.path),
                stage=StoreAccessError.STAGE_WRITE_FILE,
            ) from e

        logger.debug(f"Wrote {len(collection.tasks)} tasks to {self.path}")

    def next_id(self, collection: TaskCollection) -> str:
        return generate_task_id(collection)
