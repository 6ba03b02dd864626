# -*- coding: utf-8 -*-
"""
应用上下文

每个会话只构建一次各组件，并把它们连接起来。
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .chat.action_router import ActionRouter
from .chat.completion import CompletionService, create_completion_service
from .chat.dispatcher import CommandDispatcher
from .config.settings import AppConfig
from .task.enrichment import ContextProvider, WorkspaceContextProvider
from .task.extractor import TaskDecomposer, build_requirements_extractor
from .task.manager import TaskManager
from .task.markdown import MarkdownMirror
from .task.store import TaskStore, WorkspacePaths
from .task.todo_scanner import TodoScanner
from .task.types import TaskPriority

logger = logging.getLogger('taskpilot.context')


@dataclass
class AppContext:
    """会话内共享的组件"""
    settings: AppConfig
    store: TaskStore
    manager: TaskManager
    mirror: Optional[MarkdownMirror]
    completion: CompletionService
    context_provider: ContextProvider
    dispatcher: CommandDispatcher


def create_app_context(settings: AppConfig, completion: Optional[CompletionService] = None) -> AppContext:
    """
    组装 AppContext

    Args:
        settings: 已加载的配置
        completion: 预先构建的补全服务，为 None 时按 settings.llm 创建

    Returns:
        AppContext
    """
    paths = WorkspacePaths.resolve(settings.workspace_root, settings.task.tasks_location)
    store = TaskStore(paths)
    mirror = MarkdownMirror(paths) if settings.task.task_file_template == "markdown" else None

    manager = TaskManager(
        store,
        mirror=mirror,
        default_priority=TaskPriority(settings.task.default_priority),
        tasks_location=settings.task.tasks_location,
    )
    if completion is None:
        completion = create_completion_service(settings.llm)
    context_provider = WorkspaceContextProvider(paths.workspace_root, completion)

    router = ActionRouter(
        manager,
        scanner=TodoScanner(paths.workspace_root),
        requirements_extractor=build_requirements_extractor(completion),
        decomposer=TaskDecomposer(completion),
        context_provider=context_provider,
    )
    dispatcher = CommandDispatcher(router, completion, history_window=settings.task.history_window)

    logger.info(f"Workspace: {paths.workspace_root} (tasks in {paths.tasks_dir}, model: "
                f"{'on' if completion.available else 'off'})")

    return AppContext(
        settings=settings,
        store=store,
        manager=manager,
        mirror=mirror,
        completion=completion,
        context_provider=context_provider,
        dispatcher=dispatcher,
    )
