# -*- coding: utf-8 -*-
"""
任务导出

把整个任务集合写成一个 Markdown、JSON 或 CSV 文件。
"""
from __future__ import annotations
import csv
import io
import json
import logging
from pathlib import Path
from typing import Optional

from .types import STATUS_LABELS, TaskCollection, priority_emoji, priority_rank

logger = logging.getLogger('task.exporter')

EXPORT_FORMATS = {
    "markdown": "md",
    "md": "md",
    "json": "json",
    "csv": "csv",
}

CSV_COLUMNS = ["id", "title", "description", "priority", "status", "completed",
               "createdAt", "completedAt", "tags", "source", "parentTaskId", "subtasks"]


def normalize_format(fmt: Optional[str]) -> str:
    """
    把用户给出的格式名映射为文件扩展名

    Raises:
        ValueError: 未知格式
    """
    key = (fmt or "markdown").strip().lower()
    if key not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt} (use markdown, json or csv)")
    return EXPORT_FORMATS[key]


class TaskExporter:
    """任务集合导出器"""

    def render(self, collection: TaskCollection, extension: str) -> str:
        if extension == "json":
            return json.dumps(collection.to_dict(), indent=2, ensure_ascii=False)
        if extension == "csv":
            return self._render_csv(collection)
        return self._render_markdown(collection)

    def export(self, collection: TaskCollection, extension: str, target: Path) -> Path:
        """
        写入导出文件，自动创建父目录

        Returns:
            写入的路径
        """
        target.parent.mkdir(parents=True, exist_ok=True)
        # csv 模块自带 \r\n 换行
        newline = "" if extension == "csv" else None
        with open(target, "w", encoding="utf-8", newline=newline) as f:
            f.write(self.render(collection, extension))
        logger.info(f"Exported {len(collection.tasks)} tasks to {target}")
        return target

    @staticmethod
    def _render_csv(collection: TaskCollection) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for task in collection.tasks:
            source = ""
            if task.source:
                source = f"{task.source.file}:{task.source.line}" if task.source.line else task.source.file
            writer.writerow({
                "id": task.id,
                "title": task.title,
                "description": task.description,
                "priority": task.priority.value if task.priority else "",
                "status": task.status.value,
                "completed": str(task.completed).lower(),
                "createdAt": task.created_at,
                "completedAt": task.completed_at or "",
                "tags": ";".join(task.tags),
                "source": source,
                "parentTaskId": task.parent_task_id or "",
                "subtasks": ";".join(task.subtasks),
            })
        return buffer.getvalue()

    @staticmethod
    def _render_markdown(collection: TaskCollection) -> str:
        lines = [f"# {collection.name}", "", collection.description, ""]

        open_tasks = sorted(collection.open_tasks(), key=lambda t: priority_rank(t.priority))
        completed = collection.completed_tasks()

        lines.extend([f"## Open Tasks ({len(open_tasks)})", ""])
        if not open_tasks:
            lines.append("_No open tasks._")
        for task in open_tasks:
            priority = task.priority.value if task.priority else "unspecified"
            lines.append(f"- {priority_emoji(task.priority)} **{task.id}**: {task.title} "
                         f"({priority}, {STATUS_LABELS[task.status]})")
        lines.append("")

        lines.extend([f"## Completed Tasks ({len(completed)})", ""])
        if not completed:
            lines.append("_No completed tasks._")
        for task in completed:
            lines.append(f"- [x] **{task.id}**: {task.title}")
        lines.append("")
        return "\n".join(lines)
