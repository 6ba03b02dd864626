# -*- coding: utf-8 -*-
"""
动作路由

在任务管理器上执行已识别的意图，并把结果渲染为对话文本。
任务错误和模型错误都转换为带重试建议的简短消息，不会从 route() 抛出。
"""
from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Callable, Optional

from ..task.enrichment import ContextProvider
from ..task.exceptions import (
    DocumentReadError,
    EnrichmentError,
    MissingParameterError,
    StoreAccessError,
    TaskError,
    TaskNotFoundError,
)
from ..task.extractor import Extractor, TaskDecomposer
from ..task.manager import TaskManager
from ..task.todo_scanner import TodoScanner, resolve_file_pattern
from ..task.types import PRIORITY_ORDER, STATUS_LABELS, Task, TaskPriority, priority_emoji
from .exceptions import LLMClientError
from .intent_classifier import Intent, IntentType
from .prompts import FEATURE_HELP, FEATURE_KEYWORDS, GENERAL_HELP

logger = logging.getLogger('chat.action_router')

COMPLETED_PREVIEW = 5

INIT_HINT = "Run `initialize task tracking` first."
CREATE_HINT = "Create a task first, e.g. `create a task to write the README`."


class ActionResult:
    """动作执行结果"""
    def __init__(
        self,
        success: bool = False,
        message: str = "",
        data: dict = None
    ):
        self.success = success
        self.message = message
        self.data = data or {}


def _priority_label(priority: Optional[TaskPriority]) -> str:
    return priority.value if priority else "unspecified"


def _task_line(task: Task, with_source: bool = False) -> str:
    line = f"- {priority_emoji(task.priority)} **{task.id}**: {task.title}"
    if with_source and task.source and task.source.file:
        location = f"{task.source.file}:{task.source.line}" if task.source.line else task.source.file
        line += f" _({location})_"
    return line


def _group_by_priority(tasks: list[Task], with_source: bool = False) -> list[str]:
    lines = []
    for priority in [*PRIORITY_ORDER, None]:
        group = [t for t in tasks if t.priority == priority]
        if not group:
            continue
        lines.extend(["", f"### {priority_emoji(priority)} {_priority_label(priority).capitalize()} Priority"])
        lines.extend(_task_line(t, with_source) for t in group)
    return lines


def feature_for(text: str) -> Optional[str]:
    """帮助问题涉及的功能，通用帮助时返回 None"""
    lowered = (text or "").lower()
    for feature, keywords in FEATURE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return feature
    return None


class ActionRouter:
    """
    动作路由器

    把每个 IntentType 映射到操作任务管理器的处理函数
    """

    def __init__(
        self,
        task_manager: TaskManager,
        scanner: Optional[TodoScanner] = None,
        requirements_extractor: Optional[Extractor] = None,
        decomposer: Optional[TaskDecomposer] = None,
        context_provider: Optional[ContextProvider] = None,
    ):
        self.tasks = task_manager
        self.scanner = scanner or TodoScanner(task_manager.paths.workspace_root)
        self.requirements_extractor = requirements_extractor
        self.decomposer = decomposer
        self.context_provider = context_provider

    async def route(self, intent: Intent, on_progress: Optional[Callable[[str], None]] = None) -> ActionResult:
        """
        路由并执行意图

        Args:
            intent: 识别结果（不为 UNKNOWN）
            on_progress: 接收耗时操作的进度信息

        Returns:
            ActionResult
        """
        handlers = {
            IntentType.INITIALIZE: self._handle_initialize,
            IntentType.CREATE_TASK: self._handle_create,
            IntentType.LIST_TASKS: self._handle_list,
            IntentType.PRIORITY_QUERY: self._handle_priority_query,
            IntentType.MARK_COMPLETE: self._handle_mark_complete,
            IntentType.CHANGE_PRIORITY: self._handle_change_priority,
            IntentType.PRIORITIZE: self._handle_prioritize,
            IntentType.NEXT_TASK: self._handle_next_task,
            IntentType.SCAN_TODOS: self._handle_scan_todos,
            IntentType.PARSE_REQUIREMENTS: self._handle_parse_requirements,
            IntentType.DECOMPOSE: self._handle_decompose,
            IntentType.ENRICH: self._handle_enrich,
            IntentType.EXPORT: self._handle_export,
            IntentType.HELP: self._handle_help,
        }

        handler = handlers.get(intent.type)
        if handler is None:
            return ActionResult(success=False, message=GENERAL_HELP)

        try:
            if inspect.iscoroutinefunction(handler):
                return await handler(intent, on_progress)
            return handler(intent, on_progress)
        except TaskError as e:
            logger.info(f"{intent.type.value} failed: {e}")
            return ActionResult(success=False, message=self._describe_error(e), data={"error": type(e).__name__})
        except LLMClientError as e:
            logger.warning(f"{intent.type.value} failed in the model call: {e}")
            return ActionResult(
                success=False,
                message=f"❌ The language model could not complete this request: {e}. Try again in a moment.",
                data={"error": type(e).__name__},
            )

    @staticmethod
    def _describe_error(e: TaskError) -> str:
        if isinstance(e, TaskNotFoundError):
            return f"❌ {e}. Use `list tasks` to see the available ids."
        if isinstance(e, MissingParameterError):
            return f"❌ {e}."
        if isinstance(e, StoreAccessError):
            stage = f" (stage: {e.stage})" if e.stage else ""
            return f"❌ {e}{stage}. Check the folder permissions and try again."
        if isinstance(e, EnrichmentError):
            return f"❌ {e}. Only tasks created from TODOs or requirements documents can be enriched."
        if isinstance(e, DocumentReadError):
            return f"❌ {e}. Check the path is relative to the workspace root."
        return f"❌ {e}"

    # ===== 处理函数 =====

    def _handle_initialize(self, intent: Intent, on_progress) -> ActionResult:
        result = self.tasks.initialize()
        tasks_json = self.tasks.paths.relative(result.tasks_json)
        if result.created:
            message = (
                "✅ **Task tracking initialized**\n\n"
                f"- Task index: `{tasks_json}`\n"
                f"- Guide: `{self.tasks.paths.relative(result.readme)}`\n\n"
                "Next: `create a task to ...` or `scan for todos in the codebase`."
            )
        else:
            message = (
                f"ℹ️ Task tracking is already set up (`{tasks_json}` exists). "
                "Existing tasks were left untouched."
            )
        return ActionResult(success=True, message=message, data={"created": result.created})

    def _handle_create(self, intent: Intent, on_progress) -> ActionResult:
        task = self.tasks.create(intent.params["description"], priority=intent.params.get("priority"))
        message = (
            f"✅ Created task **{task.id}**: {task.title}\n\n"
            f"- Priority: {priority_emoji(task.priority)} {_priority_label(task.priority)}\n"
            f"- Status: {STATUS_LABELS[task.status]}"
        )
        return ActionResult(success=True, message=message, data={"task_id": task.id})

    def _handle_list(self, intent: Intent, on_progress) -> ActionResult:
        if not self.tasks.store.exists():
            return ActionResult(success=False, message=f"No task collection found. {INIT_HINT}")

        listing = self.tasks.list_tasks(
            priority=intent.params.get("priority"),
            completed=intent.params.get("completed"),
            status=intent.params.get("status"),
        )
        if not listing.open and not listing.completed:
            if intent.params:
                return ActionResult(success=True, message="No tasks match those filters.")
            return ActionResult(success=True, message=f"You don't have any tasks yet. {CREATE_HINT}")

        lines = ["📋 **Your Tasks**"]
        if listing.open:
            lines.extend(["", f"### Open Tasks ({len(listing.open)})"])
            lines.extend(_task_line(t) for t in listing.open)
        if listing.completed:
            lines.extend(["", f"### Completed Tasks ({len(listing.completed)})"])
            lines.extend(f"- ✓ **{t.id}**: {t.title}" for t in listing.completed[:COMPLETED_PREVIEW])
            remaining = len(listing.completed) - COMPLETED_PREVIEW
            if remaining > 0:
                lines.append(f"_...and {remaining} more completed tasks._")

        return ActionResult(
            success=True,
            message="\n".join(lines),
            data={"open": len(listing.open), "completed": len(listing.completed)},
        )

    def _handle_priority_query(self, intent: Intent, on_progress) -> ActionResult:
        priority: TaskPriority = intent.params["priority"]
        tasks = self.tasks.tasks_by_priority(priority)
        if not tasks:
            return ActionResult(success=True, message=f"No open {priority.value} priority tasks.")

        lines = [f"{priority_emoji(priority)} **{priority.value.capitalize()} Priority Tasks ({len(tasks)})**", ""]
        lines.extend(f"- **{t.id}**: {t.title}" for t in tasks)
        return ActionResult(success=True, message="\n".join(lines), data={"count": len(tasks)})

    def _handle_mark_complete(self, intent: Intent, on_progress) -> ActionResult:
        task = self.tasks.complete(intent.params.get("task_id"))
        return ActionResult(
            success=True,
            message=f"✅ Task **{task.id}** marked as complete: {task.title}",
            data={"task_id": task.id},
        )

    def _handle_change_priority(self, intent: Intent, on_progress) -> ActionResult:
        task, previous = self.tasks.change_priority(intent.params.get("task_id"), intent.params.get("priority"))
        message = (
            f"🔄 **{task.id}** priority changed:\n\n"
            f"- From: {priority_emoji(previous)} {_priority_label(previous).upper()}\n"
            f"- To: {priority_emoji(task.priority)} **{_priority_label(task.priority).upper()}**"
        )
        return ActionResult(success=True, message=message, data={"task_id": task.id})

    def _handle_prioritize(self, intent: Intent, on_progress) -> ActionResult:
        ordered = self.tasks.prioritize()
        if not ordered:
            return ActionResult(success=True, message=f"There are no tasks to prioritize. {CREATE_HINT}")

        open_tasks = [t for t in ordered if not t.completed]
        lines = ["📊 **Tasks prioritized**", "", f"{len(open_tasks)} open, {len(ordered) - len(open_tasks)} completed."]
        lines.extend(_group_by_priority(open_tasks))
        return ActionResult(success=True, message="\n".join(lines), data={"count": len(ordered)})

    def _handle_next_task(self, intent: Intent, on_progress) -> ActionResult:
        recommendation = self.tasks.recommend_next()
        if recommendation is None:
            return ActionResult(success=True, message="🎉 All tasks are done! Nothing left to work on.")

        task = recommendation.task
        lines = [
            "🎯 **Recommended next task**",
            "",
            _task_line(task),
            f"  - Priority: {_priority_label(task.priority)}",
            f"  - Status: {STATUS_LABELS[task.status]}",
        ]
        if recommendation.same_priority_count:
            lines.extend(["", f"There are {recommendation.same_priority_count} other "
                              f"{_priority_label(task.priority)} priority tasks waiting."])
        summary = ", ".join(
            f"{priority_emoji(p)} {count} {_priority_label(p)}"
            for p, count in recommendation.counts.items() if count
        )
        lines.extend(["", f"Open tasks: {recommendation.open_count} ({summary})"])
        return ActionResult(success=True, message="\n".join(lines), data={"task_id": task.id})

    async def _handle_scan_todos(self, intent: Intent, on_progress) -> ActionResult:
        pattern = resolve_file_pattern(intent.original_text, intent.params.get("target"))
        if on_progress:
            on_progress(f"🔍 Scanning `{pattern}` for TODO comments...")

        result = await asyncio.to_thread(self.tasks.scan_todos, self.scanner, pattern, on_progress)
        if not result.tasks:
            return ActionResult(
                success=True,
                message=f"No TODO comments found in {result.files_scanned} files matching `{pattern}`.",
                data={"created": 0},
            )

        lines = [f"✅ Found {len(result.tasks)} TODO comments in {result.files_scanned} files and created a task for each."]
        lines.extend(_group_by_priority(result.tasks, with_source=True))
        return ActionResult(success=True, message="\n".join(lines), data={"created": len(result.tasks)})

    async def _handle_parse_requirements(self, intent: Intent, on_progress) -> ActionResult:
        if self.requirements_extractor is None:
            return ActionResult(success=False, message="Requirements parsing is not available.")

        file_path = intent.params["file_path"]
        if on_progress:
            on_progress(f"📝 Parsing `{file_path}`...")

        created = await asyncio.to_thread(self.tasks.parse_requirements, file_path, self.requirements_extractor)
        if not created:
            return ActionResult(
                success=True,
                message=f"No requirements found in `{file_path}`. Try checkbox items (`- [ ] ...`) or `MUST:` lines.",
                data={"created": 0},
            )

        lines = [f"✅ Created {len(created)} tasks from `{file_path}`."]
        lines.extend(_group_by_priority(created))
        return ActionResult(success=True, message="\n".join(lines), data={"created": len(created)})

    async def _handle_decompose(self, intent: Intent, on_progress) -> ActionResult:
        if self.decomposer is None:
            return ActionResult(success=False, message="Task decomposition is not available.")

        task_id = intent.params.get("task_id")
        if on_progress:
            on_progress(f"🧩 Analyzing {task_id}...")

        result = await asyncio.to_thread(self.tasks.decompose, task_id, self.decomposer)
        if result.atomic:
            return ActionResult(
                success=True,
                message=f"Task **{result.parent.id}** looks atomic; no decomposition needed.",
                data={"created": 0},
            )

        lines = [f"🧩 Broke **{result.parent.id}** ({result.parent.title}) into {len(result.subtasks)} subtasks:", ""]
        lines.extend(_task_line(t) for t in result.subtasks)
        return ActionResult(success=True, message="\n".join(lines), data={"created": len(result.subtasks)})

    async def _handle_enrich(self, intent: Intent, on_progress) -> ActionResult:
        if self.context_provider is None:
            return ActionResult(success=False, message="Task enrichment is not available.")

        task = await asyncio.to_thread(self.tasks.enrich, intent.params.get("task_id"), self.context_provider)
        message = (
            f"✨ Task **{task.id}** has been enriched with additional context.\n\n"
            "### Enhanced Description\n"
            f"{task.enriched_content.enhanced_description}"
        )
        return ActionResult(success=True, message=message, data={"task_id": task.id})

    def _handle_export(self, intent: Intent, on_progress) -> ActionResult:
        try:
            path = self.tasks.export(intent.params.get("format"), intent.params.get("target"))
        except ValueError as e:
            return ActionResult(success=False, message=f"❌ {e}")
        return ActionResult(
            success=True,
            message=f"📤 Exported tasks to `{self.tasks.paths.relative(path)}`.",
            data={"path": str(path)},
        )

    def _handle_help(self, intent: Intent, on_progress) -> ActionResult:
        feature = feature_for(intent.original_text)
        if feature is None:
            return ActionResult(success=True, message=GENERAL_HELP)
        return ActionResult(success=True, message=FEATURE_HELP[feature], data={"feature": feature})
