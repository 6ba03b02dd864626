# -*- coding: utf-8 -*-
"""
任务类型定义

优先级 / 状态定义，以及写入 tasks.json 的 Task 和 TaskCollection（磁盘上使用 camelCase 键名）。
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TaskPriority(Enum):
    """任务优先级"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: Any) -> Optional["TaskPriority"]:
        """
        宽松解析优先级

        Args:
            value: "high" / "HIGH" / TaskPriority / None

        Returns:
            TaskPriority，无法识别时返回 None
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class TaskStatus(Enum):
    """任务状态"""
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    BLOCKED = "blocked"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: Any) -> Optional["TaskStatus"]:
        """宽松解析状态，无法识别时返回 None"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return cls(normalized)
        except ValueError:
            return None


# 列表、排序、推荐下一个任务共用的排序规则
PRIORITY_ORDER: dict[TaskPriority, int] = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}

PRIORITY_EMOJI: dict[TaskPriority, str] = {
    TaskPriority.CRITICAL: "⚠️",
    TaskPriority.HIGH: "🔴",
    TaskPriority.MEDIUM: "🟠",
    TaskPriority.LOW: "🟢",
}

STATUS_LABELS: dict[TaskStatus, str] = {
    TaskStatus.BACKLOG: "Backlog",
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.REVIEW: "In Review",
    TaskStatus.BLOCKED: "Blocked",
    TaskStatus.COMPLETED: "Completed ✅",
}

SOURCE_CONTEXT_TODO = "todo"
SOURCE_CONTEXT_REQUIREMENTS = "requirements"


def priority_rank(priority: Optional[TaskPriority]) -> int:
    """优先级在 PRIORITY_ORDER 中的位置，未指定按 medium 处理"""
    if priority is None:
        return PRIORITY_ORDER[TaskPriority.MEDIUM]
    return PRIORITY_ORDER[priority]


def priority_emoji(priority: Optional[TaskPriority]) -> str:
    if priority is None:
        return "⚪"
    return PRIORITY_EMOJI[priority]


def now_iso() -> str:
    return datetime.now().isoformat()


@dataclass
class TaskSource:
    """任务来源（TODO 注释或需求文档中的一行）"""
    file: str
    line: Optional[int] = None
    context: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"file": self.file}
        if self.line is not None:
            data["line"] = self.line
        if self.context:
            data["context"] = self.context
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskSource":
        return cls(
            file=data.get("file", ""),
            line=data.get("line"),
            context=data.get("context"),
        )


@dataclass
class EnrichedContent:
    """enrich 操作附加的 AI 增强描述"""
    enhanced_description: str
    contextual_content: str
    enriched_at: str = field(default_factory=now_iso)
    enrichment_type: str = "code-context"

    def to_dict(self) -> dict[str, Any]:
        return {
            "enhancedDescription": self.enhanced_description,
            "contextualContent": self.contextual_content,
            "enrichedAt": self.enriched_at,
            "enrichmentType": self.enrichment_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnrichedContent":
        return cls(
            enhanced_description=data.get("enhancedDescription", ""),
            contextual_content=data.get("contextualContent", ""),
            enriched_at=data.get("enrichedAt", ""),
            enrichment_type=data.get("enrichmentType", "code-context"),
        )


# Task 自身的键，磁盘上的其他键保存在 Task.extra 中
_TASK_KEYS = {
    "id", "title", "description", "priority", "status", "completed",
    "createdAt", "completedAt", "tags", "source", "subtasks",
    "parentTaskId", "enrichedContent",
}


@dataclass
class Task:
    """任务定义"""
    id: str
    title: str
    description: str = ""
    priority: Optional[TaskPriority] = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    completed: bool = False
    created_at: str = field(default_factory=now_iso)
    completed_at: Optional[str] = None

    tags: list[str] = field(default_factory=list)
    source: Optional[TaskSource] = None

    # 关联关系
    subtasks: list[str] = field(default_factory=list)
    parent_task_id: Optional[str] = None

    enriched_content: Optional[EnrichedContent] = None

    # 其他工具写入的字段（dueDate、assignee 等）
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.description:
            self.description = self.title

    def complete(self):
        """完成任务"""
        self.completed = True
        self.status = TaskStatus.COMPLETED
        self.completed_at = now_iso()

    def add_tag(self, tag: str):
        if tag not in self.tags:
            self.tags.append(tag)

    def to_dict(self) -> dict[str, Any]:
        """序列化"""
        data: dict[str, Any] = dict(self.extra)
        data.update({
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value if self.priority else None,
            "status": self.status.value,
            "completed": self.completed,
            "createdAt": self.created_at,
            "tags": list(self.tags),
        })
        if self.priority is None:
            del data["priority"]
        if self.completed_at:
            data["completedAt"] = self.completed_at
        if self.source:
            data["source"] = self.source.to_dict()
        if self.subtasks:
            data["subtasks"] = list(self.subtasks)
        if self.parent_task_id:
            data["parentTaskId"] = self.parent_task_id
        if self.enriched_content:
            data["enrichedContent"] = self.enriched_content.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """
        反序列化

        容忍未知的优先级和状态：优先级置为未指定，状态根据 completed 推断。
        """
        completed = bool(data.get("completed", False))
        status = TaskStatus.parse(data.get("status"))
        if status is None:
            status = TaskStatus.COMPLETED if completed else TaskStatus.TODO

        source = data.get("source")
        enriched = data.get("enrichedContent")

        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=data.get("description") or "",
            priority=TaskPriority.parse(data.get("priority")),
            status=status,
            completed=completed,
            created_at=data.get("createdAt", ""),
            completed_at=data.get("completedAt"),
            tags=list(data.get("tags") or []),
            source=TaskSource.from_dict(source) if isinstance(source, dict) else None,
            subtasks=list(data.get("subtasks") or []),
            parent_task_id=data.get("parentTaskId"),
            enriched_content=EnrichedContent.from_dict(enriched) if isinstance(enriched, dict) else None,
            extra={k: v for k, v in data.items() if k not in _TASK_KEYS},
        )


DEFAULT_COLLECTION_NAME = "Project Tasks"
DEFAULT_COLLECTION_DESCRIPTION = "Task collection for the project"


@dataclass
class TaskCollection:
    """一个工作区的全部任务"""
    name: str = DEFAULT_COLLECTION_NAME
    description: str = DEFAULT_COLLECTION_DESCRIPTION
    tasks: list[Task] = field(default_factory=list)

    def get(self, task_id: str) -> Optional[Task]:
        """按 ID 查找任务（不区分大小写）"""
        normalized = task_id.strip().upper()
        for task in self.tasks:
            if task.id.upper() == normalized:
                return task
        return None

    def open_tasks(self) -> list[Task]:
        return [t for t in self.tasks if not t.completed]

    def completed_tasks(self) -> list[Task]:
        return [t for t in self.tasks if t.completed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskCollection":
        if not isinstance(data, dict) or not isinstance(data.get("tasks"), list):
            raise ValueError("Task collection must be an object with a 'tasks' array")
        return cls(
            name=data.get("name") or DEFAULT_COLLECTION_NAME,
            description=data.get("description") or DEFAULT_COLLECTION_DESCRIPTION,
            tasks=[Task.from_dict(t) for t in data["tasks"]],
        )
