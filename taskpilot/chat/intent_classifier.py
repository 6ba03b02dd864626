# -*- coding: utf-8 -*-
"""
意图识别器

用确定的正则规则识别对话消息。规则按顺序匹配，第一个模式匹配且参数提取成功的规则胜出；
都不匹配时为 UNKNOWN，交给语言模型处理。
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..task.types import TaskPriority, TaskStatus

logger = logging.getLogger('chat.intent')


class IntentType(Enum):
    """意图类型"""
    INITIALIZE = "initialize"
    CREATE_TASK = "create_task"
    SCAN_TODOS = "scan_todos"
    DECOMPOSE = "decompose"
    NEXT_TASK = "next_task"
    PRIORITIZE = "prioritize"
    ENRICH = "enrich"
    EXPORT = "export"
    HELP = "help"
    PRIORITY_QUERY = "priority_query"
    MARK_COMPLETE = "mark_complete"
    CHANGE_PRIORITY = "change_priority"
    PARSE_REQUIREMENTS = "parse_requirements"
    LIST_TASKS = "list_tasks"
    UNKNOWN = "unknown"


@dataclass
class Intent:
    """识别结果"""
    type: IntentType
    params: dict[str, Any] = field(default_factory=dict)
    original_text: str = ""
    rule: str = ""


Extract = Callable[[re.Match, str], Optional[dict[str, Any]]]


@dataclass
class IntentRule:
    """一条识别规则，extract 返回 None 表示拒绝此次匹配"""
    name: str
    intent: IntentType
    pattern: re.Pattern
    extract: Extract


TASK_ID_PATTERN = re.compile(r'\b([A-Za-z]+-\d+)\b')
_PRIORITY_WORDS = r'(critical|high|medium|low)'
_FORMAT_BY_SUFFIX = {".md": "markdown", ".json": "json", ".csv": "csv"}


def find_task_id(text: str) -> Optional[str]:
    """文本中第一个 XXX-123 形式的 ID（转为大写）"""
    match = TASK_ID_PATTERN.search(text)
    return match.group(1).upper() if match else None


def _no_params(match: re.Match, text: str) -> dict[str, Any]:
    return {}


def _create_with_priority(match: re.Match, text: str) -> Optional[dict[str, Any]]:
    description = match.group(2).strip()
    if not description:
        return None
    return {"description": description, "priority": TaskPriority(match.group(1).lower())}


def _create_generic(match: re.Match, text: str) -> Optional[dict[str, Any]]:
    description = match.group(1).strip()
    if not description:
        return None
    return {"description": description}


def _scan_todos(match: re.Match, text: str) -> dict[str, Any]:
    target = match.group(1)
    return {"target": target.strip().rstrip('?.!') if target else None}


def _task_id_from_group(match: re.Match, text: str) -> dict[str, Any]:
    return {"task_id": match.group(1).upper()}


def _export(match: re.Match, text: str) -> dict[str, Any]:
    fmt = match.group(1).lower() if match.group(1) else None
    target = match.group(2).strip('\'"`') if match.group(2) else None
    if fmt is None and target:
        for suffix, name in _FORMAT_BY_SUFFIX.items():
            if target.lower().endswith(suffix):
                fmt = name
                break
    return {"format": fmt or "markdown", "target": target}


def _priority_query(match: re.Match, text: str) -> Optional[dict[str, Any]]:
    priority = TaskPriority.parse(match.group(1))
    if priority is None:
        return None
    return {"priority": priority}


def _mark_complete(match: re.Match, text: str) -> dict[str, Any]:
    return {"task_id": find_task_id(match.group(0))}


def _change_priority(match: re.Match, text: str) -> dict[str, Any]:
    return {
        "task_id": find_task_id(match.group(0)),
        "priority": TaskPriority.parse(match.group(1)),
    }


def _parse_requirements(match: re.Match, text: str) -> Optional[dict[str, Any]]:
    file_path = match.group(1).strip()
    if not file_path:
        return None
    return {"file_path": file_path}


_LIST_PRIORITY = re.compile(rf'\b{_PRIORITY_WORDS}(?:\s+priority)?\b', re.IGNORECASE)
_LIST_STATUS = re.compile(
    r'\b(?:status\s+(?:of\s+)?|that\s+are\s+)?(backlog|todo|to\s+do|in[\s-]progress|review|blocked)\b',
    re.IGNORECASE,
)
_LIST_COMPLETED = re.compile(r'\b(completed|done|finished|closed)\b', re.IGNORECASE)
_LIST_OPEN = re.compile(r'\b(open|pending|incomplete|remaining|outstanding)\b', re.IGNORECASE)


def _list_tasks(match: re.Match, text: str) -> dict[str, Any]:
    params: dict[str, Any] = {}
    priority = _LIST_PRIORITY.search(text)
    if priority:
        params["priority"] = TaskPriority(priority.group(1).lower())
    status = _LIST_STATUS.search(text)
    if status:
        params["status"] = TaskStatus.parse(re.sub(r'\s+', '-', status.group(1)).replace("to-do", "todo"))
    if _LIST_COMPLETED.search(text):
        params["completed"] = True
    elif _LIST_OPEN.search(text):
        params["completed"] = False
    return params


def _rule(name: str, intent: IntentType, pattern: str, extract: Extract) -> IntentRule:
    return IntentRule(name, intent, re.compile(pattern, re.IGNORECASE), extract)


DEFAULT_RULES: list[IntentRule] = [
    # 明确的命令
    _rule("initialize", IntentType.INITIALIZE,
          r'initialize\s+task\s+tracking(?:\s+for\s+this\s+project)?', _no_params),
    _rule("create_with_priority", IntentType.CREATE_TASK,
          rf'(?:create|add)\s+(?:a\s+)?{_PRIORITY_WORDS}\s+(?:priority\s+)?task\s+to\s+(.+)',
          _create_with_priority),
    _rule("create", IntentType.CREATE_TASK,
          r'(?:create|add)\s+(?:a\s+)?task\s+to\s+(.+)', _create_generic),
    _rule("scan_todos", IntentType.SCAN_TODOS,
          r'(?:scan|find|extract|create\s+tasks\s+from)(?:\s+for)?\s+todos(?:\s+in\s+(.+))?', _scan_todos),
    _rule("decompose", IntentType.DECOMPOSE,
          r'\b(?:break|split|decompose)\s+(?:down\s+)?(?:task\s+)?([A-Za-z]+-\d+)\s+(?:down\s+)?into\s+'
          r'(?:sub-?tasks|smaller\s+tasks)', _task_id_from_group),
    _rule("next_task", IntentType.NEXT_TASK,
          r'\bwhat\s+(?:task\s+)?should\s+i\s+work\s+on|\bnext\s+task\b|^\s*what(?:\'s|\s+is)\s+next\s*[?!.]?\s*$',
          _no_params),
    _rule("prioritize", IntentType.PRIORITIZE,
          r'\b(?:prioritize|sort|reorder)\s+(?:all\s+|my\s+|the\s+)?tasks\b', _no_params),
    _rule("enrich", IntentType.ENRICH,
          r'\benrich\s+(?:task\s+)?([A-Za-z]+-\d+)', _task_id_from_group),
    _rule("export", IntentType.EXPORT,
          r'\bexport\s+(?:all\s+|my\s+|the\s+)?tasks(?:\s+(?:as|in)\s+(markdown|md|json|csv))?(?:\s+to\s+(\S+))?',
          _export),
    _rule("help", IntentType.HELP,
          r'^\s*help\s*[?!.]?\s*$|\bwhat\s+can\s+you\s+do\b'
          r'|\bhow\s+(?:do|can)\s+i\b[^?.!]*\b(?:tasks?|todos?|subtasks|taskpilot)\b'
          r'|\bhelp\s+(?:me\s+)?(?:with|on)\b[^?.!]*\b(?:tasks?|todos?|subtasks|taskpilot)\b',
          _no_params),
    # 关键词兜底
    _rule("initialize_keyword", IntentType.INITIALIZE, r'initialize task tracking', _no_params),
    _rule("priority_query", IntentType.PRIORITY_QUERY, r'what\s+tasks\s+are\s+(\w+)\s+priority', _priority_query),
    _rule("mark_complete", IntentType.MARK_COMPLETE, r'mark\s+task\s+.+\s+as\s+complete', _mark_complete),
    _rule("mark_priority", IntentType.CHANGE_PRIORITY,
          r'mark\s+task\s+.+\s+as\s+(\w+)\s+priority', _change_priority),
    _rule("change_priority", IntentType.CHANGE_PRIORITY,
          r'\bchange\b.*\bpriority\b.*\bto\s+(\w+)', _change_priority),
    _rule("parse_requirements", IntentType.PARSE_REQUIREMENTS,
          r'parse\s+[\'"`]?([^\'"`]+?)[\'"`]?\s+and\s+create\s+tasks', _parse_requirements),
    _rule("list_tasks", IntentType.LIST_TASKS, r'\b(?:read|show|list|get|display|view)\b', _list_tasks),
]


class IntentClassifier:
    """
    意图识别器

    参数只取自正则捕获组，不会从之前的对话推断。
    """

    def __init__(self, rules: Optional[list[IntentRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def classify(self, utterance: str) -> Intent:
        """
        识别一条消息

        Args:
            utterance: 用户文本（已去掉 @ 提及前缀）

        Returns:
            Intent；没有规则接受时为 IntentType.UNKNOWN
        """
        text = utterance.strip()
        for rule in self.rules:
            match = rule.pattern.search(text)
            if not match:
                continue
            params = rule.extract(match, text)
            if params is None:
                logger.debug(f"Rule '{rule.name}' matched but rejected its captures")
                continue
            logger.debug(f"Classified as {rule.intent.value} by rule '{rule.name}'")
            return Intent(type=rule.intent, params=params, original_text=utterance, rule=rule.name)

        return Intent(type=IntentType.UNKNOWN, original_text=utterance)
