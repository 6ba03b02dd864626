# -*- coding: utf-8 -*-
"""
任务上下文补充

上下文提供者查找任务来源的代码或文档内容，并生成增强描述。
"""
from __future__ import annotations
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from ..chat.exceptions import LLMClientError
from ..chat.prompts import ENRICHMENT_PROMPT
from .exceptions import EnrichmentError
from .types import SOURCE_CONTEXT_REQUIREMENTS, EnrichedContent, Task, now_iso

logger = logging.getLogger('task.enrichment')

ENRICHMENT_CODE = "code-context"
ENRICHMENT_REQUIREMENTS = "requirements-context"

CODE_CONTEXT_LINES = 10
_HEADING = re.compile(r'^#{1,6}\s+')


class ContextProvider(ABC):
    """补充上下文时使用的语义查找"""

    @abstractmethod
    def code_context(self, task: Task) -> str:
        """任务所在代码位置附近的源码"""
        raise NotImplementedError

    @abstractmethod
    def requirements_context(self, task: Task) -> str:
        """需求所在的文档章节"""
        raise NotImplementedError

    @abstractmethod
    def enhance(self, task: Task, context: str, kind: str) -> str:
        """结合上下文生成的增强描述"""
        raise NotImplementedError

    def enrich(self, task: Task) -> EnrichedContent:
        """
        为任务生成补充内容

        需求任务取文档章节，其他任务取来源行附近的代码。

        Raises:
            EnrichmentError: 任务没有可用的来源信息
        """
        if task.source is not None and task.source.context == SOURCE_CONTEXT_REQUIREMENTS:
            context = self.requirements_context(task)
            kind, enrichment_type = "requirements document section", ENRICHMENT_REQUIREMENTS
        else:
            context = self.code_context(task)
            kind, enrichment_type = "source code", ENRICHMENT_CODE

        return EnrichedContent(
            enhanced_description=self.enhance(task, context, kind),
            contextual_content=context,
            enriched_at=now_iso(),
            enrichment_type=enrichment_type,
        )


class WorkspaceContextProvider(ContextProvider):
    """
    从工作区文件读取上下文

    - 代码: 来源行前后各 CODE_CONTEXT_LINES 行
    - 需求: 需求所在的 Markdown 章节
    - 增强描述: 使用补全服务，不可用时返回任务描述
    """

    def __init__(self, workspace_root: str | Path, completion=None):
        self.workspace_root = Path(workspace_root)
        self.completion = completion

    def _read_source(self, task: Task) -> list[str]:
        path = self.workspace_root / task.source.file
        try:
            return path.read_text(encoding='utf-8').splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise EnrichmentError(f"Cannot read source file {task.source.file}: {e}") from e

    def code_context(self, task: Task) -> str:
        if task.source is None or not task.source.file or not task.source.line:
            raise EnrichmentError(f"Task {task.id} does not have valid source information")

        lines = self._read_source(task)
        start = max(0, task.source.line - 1 - CODE_CONTEXT_LINES)
        end = min(len(lines), task.source.line + CODE_CONTEXT_LINES)
        width = len(str(end))
        return "\n".join(f"{n + 1:>{width}}: {lines[n]}" for n in range(start, end))

    def requirements_context(self, task: Task) -> str:
        if task.source is None or not task.source.file:
            raise EnrichmentError(f"Task {task.id} does not have a valid source document")

        lines = self._read_source(task)
        index = self._locate(task, lines)

        start = index
        while start > 0 and not _HEADING.match(lines[start]):
            start -= 1
        end = index + 1
        while end < len(lines) and not _HEADING.match(lines[end]):
            end += 1
        return "\n".join(lines[start:end]).strip()

    @staticmethod
    def _locate(task: Task, lines: list[str]) -> int:
        if task.source.line and 0 < task.source.line <= len(lines):
            return task.source.line - 1
        for index, line in enumerate(lines):
            if task.title in line:
                return index
        return 0

    def enhance(self, task: Task, context: str, kind: str) -> str:
        if self.completion is None or not self.completion.available:
            return task.description

        messages = [
            {"role": "assistant", "content": ENRICHMENT_PROMPT.format(kind=kind)},
            {"role": "user", "content": f"Task: {task.title}\n\n{kind.capitalize()}:\n{context}"},
        ]
        try:
            reply = self.completion.complete(messages).strip()
        except LLMClientError as e:
            logger.warning(f"Enhanced description unavailable for {task.id}: {e}")
            return task.description
        return reply or task.description
