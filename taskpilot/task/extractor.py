# -*- coding: utf-8 -*-
"""
任务提取器

把非结构化文本（需求文档、模型回复）转换为任务候选。
先用确定的行规则匹配，找不到时才询问模型。
"""
from __future__ import annotations
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from json_repair import repair_json

from ..chat.exceptions import LLMClientError
from ..chat.prompts import DECOMPOSITION_PROMPT, REQUIREMENTS_EXTRACTION_PROMPT
from .types import Task, TaskPriority

logger = logging.getLogger('task.extractor')

MIN_DESCRIPTION_LENGTH = 6

# (正则, 优先级)，每行取第一个匹配
REQUIREMENT_PATTERNS: list[tuple[re.Pattern, Optional[TaskPriority]]] = [
    (re.compile(r'^[\s\-*]*\[\s?\]\s+(.+)'), TaskPriority.MEDIUM),
    (re.compile(r'^\s*REQ-\d+:\s*(.+)', re.IGNORECASE), TaskPriority.HIGH),
    (re.compile(r'^\s*MUST:\s*(.+)', re.IGNORECASE), TaskPriority.CRITICAL),
    (re.compile(r'^\s*SHOULD:\s*(.+)', re.IGNORECASE), TaskPriority.MEDIUM),
    (re.compile(r'^\s*MAY:\s*(.+)', re.IGNORECASE), TaskPriority.LOW),
    (re.compile(r'^\s*[\d.•*-]+\s+(.*\b(?:should|must|will|shall)\b.*)', re.IGNORECASE), TaskPriority.MEDIUM),
    (re.compile(r'^#+\s+(.*\b(?:implement|create|add|build)\b.*)', re.IGNORECASE), TaskPriority.MEDIUM),
    # 方括号标签，优先级取自标签本身
    (re.compile(r'^(.*?)\s*\[(critical|high|medium|low)\]\s*(.*)$', re.IGNORECASE), None),
]

_CODE_FENCE = re.compile(r'```(?:json)?\s*([\s\S]+?)\s*```')


@dataclass
class ExtractedTask:
    """提取器产生的任务候选"""
    description: str
    priority: TaskPriority = TaskPriority.MEDIUM
    line: Optional[int] = None


class Extractor(ABC):
    """从文档中提取任务候选"""

    @abstractmethod
    def extract(self, content: str, file_name: str = "") -> list[ExtractedTask]:
        """返回候选列表，空列表表示没有找到"""
        raise NotImplementedError("Subclasses must implement extract()")


def _match_requirement(line: str) -> Optional[tuple[str, TaskPriority]]:
    for pattern, priority in REQUIREMENT_PATTERNS:
        match = pattern.match(line)
        if not match:
            continue
        if priority is None:
            description = " ".join(p for p in (match.group(1).strip(), match.group(3).strip()) if p)
            description = description.lstrip('-*• ').strip()
            return description, TaskPriority(match.group(2).lower())
        return match.group(1).strip(), priority
    return None


class RequirementsExtractor(Extractor):
    """基于行规则的需求解析器"""

    def extract(self, content: str, file_name: str = "") -> list[ExtractedTask]:
        found = []
        for index, line in enumerate(content.splitlines()):
            matched = _match_requirement(line)
            if matched is None:
                continue
            description, priority = matched
            if len(description) < MIN_DESCRIPTION_LENGTH:
                continue
            found.append(ExtractedTask(description=description, priority=priority, line=index + 1))
        logger.debug(f"Pattern extraction found {len(found)} requirements in {file_name or 'document'}")
        return found


def parse_llm_task_array(text: str, default_priority: TaskPriority = TaskPriority.MEDIUM) -> list[ExtractedTask]:
    """
    解析模型回复中的 {description, priority} JSON 数组

    容忍 Markdown 代码块、用单个对象代替数组，以及格式错误的 JSON（用 json_repair 修复）。
    不会抛出异常。

    Args:
        text: 模型回复
        default_priority: 条目缺少优先级或优先级无效时使用

    Returns:
        校验后的任务候选，可能为空
    """
    if not text or not text.strip():
        return []

    fenced = _CODE_FENCE.search(text)
    payload = (fenced.group(1) if fenced else text).strip()

    data: Any
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        try:
            data = repair_json(payload, return_objects=True)
        except Exception as e:
            logger.debug(f"json_repair failed: {e}")
            return []

    if isinstance(data, dict):
        # {"tasks": [...]} 或单个条目
        nested = next((v for v in data.values() if isinstance(v, list)), None)
        data = nested if nested is not None else [data]
    if not isinstance(data, list):
        logger.debug(f"Model reply is not a JSON array: {payload[:200]}")
        return []

    results = []
    for item in data:
        if not isinstance(item, dict):
            continue
        description = item.get("description")
        if not isinstance(description, str) or len(description.strip()) < MIN_DESCRIPTION_LENGTH:
            continue
        priority = TaskPriority.parse(item.get("priority")) or default_priority
        results.append(ExtractedTask(description=description.strip(), priority=priority))
    return results


class LLMRequirementsExtractor(Extractor):
    """请补全服务提取需求"""

    def __init__(self, completion):
        self.completion = completion

    def extract(self, content: str, file_name: str = "") -> list[ExtractedTask]:
        if not self.completion.available or not content.strip():
            return []

        messages = [
            {"role": "assistant", "content": REQUIREMENTS_EXTRACTION_PROMPT},
            {"role": "user", "content": f"Document: {file_name}\n\n{content}"},
        ]
        try:
            reply = self.completion.complete(messages)
        except LLMClientError as e:
            logger.warning(f"AI requirements extraction failed: {e}")
            return []

        results = parse_llm_task_array(reply)
        logger.info(f"AI extraction found {len(results)} requirements in {file_name or 'document'}")
        return results


class ChainedExtractor(Extractor):
    """按顺序运行提取器，取第一个非空结果"""

    def __init__(self, *extractors: Extractor):
        self.extractors = list(extractors)

    def extract(self, content: str, file_name: str = "") -> list[ExtractedTask]:
        for extractor in self.extractors:
            results = extractor.extract(content, file_name)
            if results:
                return results
        return []


class TaskDecomposer:
    """请补全服务把任务拆分为子任务"""

    def __init__(self, completion):
        self.completion = completion

    def analyze(self, task: Task) -> list[ExtractedTask]:
        """
        为任务建议子任务

        Returns:
            子任务候选；任务无需拆分或模型不可用时为空
        """
        if not self.completion.available:
            return []

        parent_priority = task.priority or TaskPriority.MEDIUM
        details = [
            f"Task ID: {task.id}",
            f"Title: {task.title}",
            f"Priority: {parent_priority.value}",
            f"Status: {task.status.value}",
            f"Description: {task.description}",
        ]
        if task.tags:
            details.append(f"Tags: {', '.join(task.tags)}")

        messages = [
            {"role": "assistant", "content": DECOMPOSITION_PROMPT.format(priority=parent_priority.value)},
            {"role": "user", "content": "\n".join(details)},
        ]
        try:
            reply = self.completion.complete(messages)
        except LLMClientError as e:
            logger.warning(f"Decomposition analysis failed for {task.id}: {e}")
            return []

        return parse_llm_task_array(reply, default_priority=parent_priority)


def build_requirements_extractor(completion) -> Extractor:
    return ChainedExtractor(RequirementsExtractor(), LLMRequirementsExtractor(completion))
