# -*- coding: utf-8 -*-
"""
任务管理器

基于工作区存储的任务操作。每次修改都读取整个集合、修改后一次写回，
之后尽力重新生成 Markdown 镜像。
"""
from __future__ import annotations
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .enrichment import ContextProvider
from .exceptions import DocumentReadError, MissingParameterError, StoreAccessError, TaskNotFoundError
from .exporter import TaskExporter, normalize_format
from .extractor import ExtractedTask, Extractor, TaskDecomposer
from .markdown import MarkdownMirror
from .store import TaskStore
from .todo_scanner import DEFAULT_FILE_PATTERN, TodoScanner, map_todo_priority
from .types import (
    PRIORITY_ORDER,
    SOURCE_CONTEXT_REQUIREMENTS,
    SOURCE_CONTEXT_TODO,
    Task,
    TaskCollection,
    TaskPriority,
    TaskSource,
    TaskStatus,
    priority_rank,
)

logger = logging.getLogger('task.manager')

TAG_CODE_TODO = "code-todo"
TAG_REQUIREMENT = "requirement"
TAG_SUBTASK = "subtask"


def sort_key(task: Task) -> tuple[int, int]:
    """未完成在前，其次按优先级排序"""
    return (1 if task.completed else 0, priority_rank(task.priority))


@dataclass
class InitResult:
    tasks_json: Path
    readme: Path
    created: bool          # tasks.json 已存在时为 False


@dataclass
class TaskListing:
    open: list[Task] = field(default_factory=list)
    completed: list[Task] = field(default_factory=list)


@dataclass
class Recommendation:
    task: Task
    same_priority_count: int                          # 同优先级的其他未完成任务数
    counts: dict[Optional[TaskPriority], int] = field(default_factory=dict)
    open_count: int = 0


@dataclass
class ScanResult:
    tasks: list[Task]
    files_scanned: int
    pattern: str


@dataclass
class Decomposition:
    parent: Task
    subtasks: list[Task]

    @property
    def atomic(self) -> bool:
        return not self.subtasks


class TaskManager:
    """
    任务管理器

    功能:
    - 初始化、创建、列表与筛选
    - 标记完成、修改优先级、排序、推荐下一个任务
    - TODO 扫描、需求解析、任务拆分、上下文补充
    - 导出
    """

    def __init__(
        self,
        store: TaskStore,
        mirror: Optional[MarkdownMirror] = None,
        default_priority: TaskPriority = TaskPriority.MEDIUM,
        tasks_location: str = "tasks",
    ):
        self.store = store
        self.mirror = mirror
        self.default_priority = default_priority
        self.tasks_location = tasks_location

    @property
    def paths(self):
        return self.store.paths

    def _mirror(self, tasks: Iterable[Task]):
        if self.mirror is None:
            return
        for task in tasks:
            self.mirror.save_quietly(task)

    def _new_task(
        self,
        collection: TaskCollection,
        title: str,
        priority: Optional[TaskPriority] = None,
        description: str = "",
        tags: Optional[list[str]] = None,
        source: Optional[TaskSource] = None,
        parent_task_id: Optional[str] = None,
    ) -> Task:
        """用下一个 ID 构建任务并追加到集合"""
        task = Task(
            id=self.store.next_id(collection),
            title=title,
            description=description,
            priority=priority or self.default_priority,
            status=TaskStatus.TODO,
            tags=list(tags or []),
            source=source,
            parent_task_id=parent_task_id,
        )
        collection.tasks.append(task)
        return task

    # ===== 初始化 =====

    def initialize(self) -> InitResult:
        """
        创建 tasks 目录、tasks.json（不存在时）和 README.md

        Raises:
            StoreAccessError: stage 为 resolve-paths、create-directory 或 write-file
        """
        root = self.paths.workspace_root
        if not root.is_dir():
            raise StoreAccessError(
                f"Workspace folder {root} does not exist or is not a directory",
                path=str(root),
                stage=StoreAccessError.STAGE_RESOLVE_PATHS,
            )

        tasks_dir = self.paths.tasks_dir
        try:
            tasks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreAccessError(
                f"Could not create tasks directory {tasks_dir}: {e}",
                path=str(tasks_dir),
                stage=StoreAccessError.STAGE_CREATE_DIRECTORY,
            ) from e

        created = False
        if not self.store.exists():
            try:
                self.store.write_collection(TaskCollection())
            except StoreAccessError as e:
                e.stage = StoreAccessError.STAGE_WRITE_FILE
                raise
            created = True
        else:
            logger.info(f"{self.store.path} already exists, leaving it untouched")

        readme = tasks_dir / "README.md"
        # json 模式下同样写入
        writer = self.mirror or MarkdownMirror(self.paths)
        try:
            readme = writer.write_readme(self.tasks_location)
        except OSError as e:
            raise StoreAccessError(
                f"Could not write {readme}: {e}",
                path=str(readme),
                stage=StoreAccessError.STAGE_WRITE_FILE,
            ) from e

        logger.info(f"Task tracking initialized at {tasks_dir}")
        return InitResult(tasks_json=self.store.path, readme=readme, created=created)

    # ===== 创建与查询 =====

    def create(
        self,
        title: str,
        priority: Optional[TaskPriority] = None,
        description: str = "",
        tags: Optional[list[str]] = None,
    ) -> Task:
        """
        创建任务

        Args:
            title: 任务标题
            priority: 指定的优先级，为 None 时使用配置的默认值

        Returns:
            创建的任务
        """
        title = title.strip()
        if not title:
            raise MissingParameterError("description", "e.g. create a task to fix the login page")

        collection = self.store.read_collection()
        task = self._new_task(collection, title, priority, description, tags)
        self.store.write_collection(collection)
        self._mirror([task])

        logger.info(f"Created task: {task.id} - {title}")
        return task

    def list_tasks(
        self,
        priority: Optional[TaskPriority] = None,
        completed: Optional[bool] = None,
        status: Optional[TaskStatus] = None,
    ) -> TaskListing:
        """
        筛选任务，未完成的按优先级排序

        Args:
            priority: 只保留该优先级
            completed: True 只保留已完成，False 只保留未完成
            status: 只保留该状态
        """
        tasks = self.store.read_collection().tasks
        if priority is not None:
            tasks = [t for t in tasks if t.priority == priority]
        if completed is not None:
            tasks = [t for t in tasks if t.completed == completed]
        if status is not None:
            tasks = [t for t in tasks if t.status == status]

        return TaskListing(
            open=sorted((t for t in tasks if not t.completed), key=lambda t: priority_rank(t.priority)),
            completed=[t for t in tasks if t.completed],
        )

    def tasks_by_priority(self, priority: TaskPriority) -> list[Task]:
        """某一优先级的未完成任务"""
        return [
            t for t in self.store.read_collection().tasks
            if t.priority == priority and not t.completed
        ]

    # ===== 更新 =====

    def complete(self, task_id: str) -> Task:
        """
        标记任务完成

        Raises:
            TaskNotFoundError: 此时不写入任何内容
        """
        if not task_id:
            raise MissingParameterError("task id", "e.g. mark task TASK-001 as complete")

        collection = self.store.read_collection()
        task = collection.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id.upper())

        task.complete()
        self.store.write_collection(collection)
        self._mirror([task])

        logger.info(f"Completed task: {task.id}")
        return task

    def change_priority(self, task_id: Optional[str], priority: Optional[TaskPriority]) -> tuple[Task, Optional[TaskPriority]]:
        """
        修改任务优先级

        Returns:
            (任务, 原优先级)
        """
        if not task_id:
            raise MissingParameterError("task id", "e.g. mark task TASK-001 as high priority")
        if priority is None:
            raise MissingParameterError("priority", "use critical, high, medium or low")

        collection = self.store.read_collection()
        task = collection.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id.upper())

        previous = task.priority
        task.priority = priority
        self.store.write_collection(collection)
        self._mirror([task])

        logger.info(f"Changed priority of {task.id}: {previous} -> {priority.value}")
        return task, previous

    def prioritize(self) -> list[Task]:
        """
        重新排序：未完成在前，其次按优先级

        稳定排序且不修改任务字段，重复执行得到相同的文件。
        """
        collection = self.store.read_collection()
        collection.tasks = sorted(collection.tasks, key=sort_key)
        self.store.write_collection(collection)
        return collection.tasks

    def recommend_next(self) -> Optional[Recommendation]:
        """优先级最高的未完成任务，全部完成时返回 None"""
        open_tasks = self.store.read_collection().open_tasks()
        if not open_tasks:
            return None

        ranked = sorted(open_tasks, key=lambda t: priority_rank(t.priority))
        head = ranked[0]
        head_rank = priority_rank(head.priority)
        same = sum(1 for t in ranked[1:] if priority_rank(t.priority) == head_rank)

        counter = Counter(t.priority for t in open_tasks)
        counts = {p: counter.get(p, 0) for p in PRIORITY_ORDER}
        if counter.get(None):
            counts[None] = counter[None]

        return Recommendation(task=head, same_priority_count=same, counts=counts, open_count=len(open_tasks))

    # ===== 提取 =====

    def scan_todos(
        self,
        scanner: TodoScanner,
        pattern: str = DEFAULT_FILE_PATTERN,
        progress: Optional[Callable[[str], None]] = None,
    ) -> ScanResult:
        """每条 TODO 注释创建一个任务"""
        todos, files_scanned = scanner.scan(pattern, progress)
        if not todos:
            return ScanResult(tasks=[], files_scanned=files_scanned, pattern=pattern)

        collection = self.store.read_collection()
        created = [
            self._new_task(
                collection,
                title=todo.comment,
                priority=map_todo_priority(todo.priority_hint, self.default_priority),
                description=f"TODO from {todo.file}:{todo.line}",
                tags=[TAG_CODE_TODO],
                source=TaskSource(file=todo.file, line=todo.line, context=SOURCE_CONTEXT_TODO),
            )
            for todo in todos
        ]
        self.store.write_collection(collection)
        self._mirror(created)

        logger.info(f"Created {len(created)} tasks from TODO comments")
        return ScanResult(tasks=created, files_scanned=files_scanned, pattern=pattern)

    def parse_requirements(self, file_path: str, extractor: Extractor) -> list[Task]:
        """
        从需求文档创建任务

        Args:
            file_path: 相对工作区的路径或绝对路径
            extractor: 先规则后 AI 的提取链

        Raises:
            DocumentReadError: 文档无法读取
        """
        path = Path(file_path)
        if not path.is_absolute():
            path = self.paths.workspace_root / path
        try:
            content = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentReadError(file_path, str(e)) from e

        relative = self.paths.relative(path)
        extracted = extractor.extract(content, relative)
        return self.add_extracted(extracted, relative)

    def add_extracted(self, extracted: list[ExtractedTask], source_file: str) -> list[Task]:
        """一次写入追加所有需求候选"""
        if not extracted:
            return []

        collection = self.store.read_collection()
        created = [
            self._new_task(
                collection,
                title=item.description,
                priority=item.priority,
                description=f"Task created from requirements in {source_file}",
                tags=[TAG_REQUIREMENT],
                source=TaskSource(file=source_file, line=item.line, context=SOURCE_CONTEXT_REQUIREMENTS),
            )
            for item in extracted
        ]
        self.store.write_collection(collection)
        self._mirror(created)

        logger.info(f"Created {len(created)} tasks from {source_file}")
        return created

    def decompose(self, task_id: str, decomposer: TaskDecomposer) -> Decomposition:
        """
        按模型的建议把任务拆分为子任务

        子任务继承父任务的标签并加上 "subtask"，父任务记录子任务 ID。
        任务无需拆分时不写入任何内容。
        """
        if not task_id:
            raise MissingParameterError("task id", "e.g. break TASK-001 into subtasks")

        collection = self.store.read_collection()
        parent = collection.get(task_id)
        if parent is None:
            raise TaskNotFoundError(task_id.upper())

        proposals = decomposer.analyze(parent)
        if not proposals:
            return Decomposition(parent=parent, subtasks=[])

        tags = list(parent.tags)
        if TAG_SUBTASK not in tags:
            tags.append(TAG_SUBTASK)

        subtasks = []
        for proposal in proposals:
            subtask = self._new_task(
                collection,
                title=proposal.description,
                priority=proposal.priority,
                tags=tags,
                parent_task_id=parent.id,
            )
            parent.subtasks.append(subtask.id)
            subtasks.append(subtask)

        self.store.write_collection(collection)
        self._mirror([parent, *subtasks])

        logger.info(f"Decomposed {parent.id} into {len(subtasks)} subtasks")
        return Decomposition(parent=parent, subtasks=subtasks)

    def enrich(self, task_id: str, provider: ContextProvider) -> Task:
        """
        为任务附加补充上下文

        Raises:
            TaskNotFoundError: ID 不存在
            EnrichmentError: 任务没有可用的来源
        """
        if not task_id:
            raise MissingParameterError("task id", "e.g. enrich task TASK-001")

        collection = self.store.read_collection()
        task = collection.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id.upper())

        task.enriched_content = provider.enrich(task)
        self.store.write_collection(collection)
        self._mirror([task])

        logger.info(f"Enriched task {task.id} ({task.enriched_content.enrichment_type})")
        return task

    # ===== 导出 =====

    def export(self, fmt: Optional[str] = None, target: Optional[str] = None) -> Path:
        """
        导出任务集合

        Args:
            fmt: markdown | json | csv（默认 markdown）
            target: 输出路径，默认 <workspace>/tasks-export.<ext>

        Raises:
            ValueError: 未知格式
            StoreAccessError: 文件无法写入
        """
        extension = normalize_format(fmt)
        if target:
            path = Path(target).expanduser()
            if not path.is_absolute():
                path = self.paths.workspace_root / path
        else:
            path = self.paths.workspace_root / f"tasks-export.{extension}"

        collection = self.store.read_collection()
        try:
            return TaskExporter().export(collection, extension, path)
        except OSError as e:
            raise StoreAccessError(
                f"Failed to export tasks to {path}: {e}",
                path=str(path),
                stage=StoreAccessError.STAGE_WRITE_FILE,
            ) from e
