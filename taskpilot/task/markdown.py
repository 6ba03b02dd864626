# -*- coding: utf-8 -*-
"""
任务 Markdown 镜像

每个任务生成一个带 YAML front matter 的 <TASK-ID>.md。
文件由 tasks.json 派生，每次都整体重写，不会被读回。
"""
import logging
import os
from pathlib import Path

import yaml

from ..utils.helpers import format_timestamp
from .store import WorkspacePaths
from .types import STATUS_LABELS, Task

logger = logging.getLogger('task.markdown')


def _format_date(value: str) -> str:
    """ISO 时间 -> YYYY-MM-DD，无法解析时原样返回"""
    return format_timestamp(value or "", "%Y-%m-%d")


class MarkdownMirror:
    """
    Markdown 镜像写入器

    功能:
    - YAML front matter（id、priority、status、tags）
    - 固定的章节结构，每次变更整体重新生成
    - 指回工作区源文件的相对链接
    """

    def __init__(self, paths: WorkspacePaths):
        self.paths = paths

    def path_for(self, task: Task) -> Path:
        return self.paths.tasks_dir / f"{task.id}.md"

    def render(self, task: Task) -> str:
        """
        将任务渲染为 Markdown

        Args:
            task: 要渲染的任务

        Returns:
            Markdown 文本
        """
        fm = {
            "id": task.id,
            "title": task.title,
            "priority": task.priority.value if task.priority else None,
            "status": task.status.value,
            "completed": task.completed,
            "created_at": task.created_at,
            "tags": list(task.tags),
        }
        if task.parent_task_id:
            fm["parent"] = task.parent_task_id

        priority = task.priority.value if task.priority else "unspecified"
        details = [
            f"- **Priority**: {priority}",
            f"- **Status**: {STATUS_LABELS[task.status]}",
            f"- **Created**: {_format_date(task.created_at)}",
        ]
        if task.completed_at:
            details.append(f"- **Completed Date**: {_format_date(task.completed_at)}")
        if task.source and task.source.file:
            details.append(f"- **Source**: {self._source_link(task)}")
        if task.parent_task_id:
            details.append(f"- **Parent Task**: {task.parent_task_id}")
        if task.tags:
            details.append(f"- **Tags**: {', '.join(task.tags)}")

        lines = [
            "---",
            yaml.safe_dump(fm, allow_unicode=True, sort_keys=False).rstrip(),
            "---",
            "",
            f"# {task.id}: {task.title}",
            "",
            "## Details",
            *details,
            "",
            "## Description",
            task.description,
            "",
        ]

        if task.subtasks:
            lines.extend(["## Subtasks", *[f"- {sub_id}" for sub_id in task.subtasks], ""])

        if task.enriched_content:
            enriched = task.enriched_content
            lines.extend([
                "## Enriched Context",
                f"*Last updated: {_format_date(enriched.enriched_at)}*",
                "",
                "### Enhanced Description",
                enriched.enhanced_description,
                "",
                "### Source Context",
                "```",
                enriched.contextual_content,
                "```",
                "",
            ])

        lines.extend(["## Notes", "- Created via taskpilot", ""])
        return "\n".join(lines)

    def save(self, task: Task) -> Path:
        """
        写入（或覆盖）任务的镜像文件

        Returns:
            写入的文件路径
        """
        file_path = self.path_for(task)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(self.render(task), encoding='utf-8')
        logger.debug(f"Mirror written: {file_path}")
        return file_path

    def save_quietly(self, task: Task) -> bool:
        """尽力保存，失败只记录日志不抛出"""
        try:
            self.save(task)
            return True
        except OSError as e:
            logger.warning(f"Could not update markdown file for task {task.id}: {e}")
            return False

    def _source_link(self, task: Task) -> str:
        source = task.source
        target = self.paths.workspace_root / source.file
        href = Path(os.path.relpath(target, self.paths.tasks_dir)).as_posix()
        label = source.file
        if source.line:
            label = f"{source.file}:{source.line}"
            href = f"{href}#L{source.line}"
        return f"[{label}]({href})"

    def write_readme(self, tasks_location: str) -> Path:
        """
        写入说明 tasks 目录的 README

        Returns:
            README 路径
        """
        readme_path = self.paths.tasks_dir / "README.md"
        lines = [
            "# Tasks Directory",
            "",
            "This directory contains task files for the project managed by taskpilot.",
            "",
            "## Structure",
            "",
            "- `tasks.json` - Master index of all tasks",
            "- `TASK-XXX.md` - One generated file per task (do not edit, regenerated from tasks.json)",
            "",
            "## Task Management",
            "",
            "Chat with taskpilot to manage tasks:",
            "",
            "- Create tasks: `Create a task to...`",
            "- List tasks: `List all tasks`",
            "- Mark complete: `Mark task TASK-XXX as complete`",
            "- Scan TODOs: `Scan for TODOs in the codebase`",
            "",
            f"Tasks live in `{tasks_location}/`.",
            "",
        ]
        readme_path.parent.mkdir(parents=True, exist_ok=True)
        readme_path.write_text("\n".join(lines), encoding='utf-8')
        return readme_path
