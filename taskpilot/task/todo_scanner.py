# -*- coding: utf-8 -*-
"""
TODO 扫描器

遍历工作区中匹配 glob 的文件（遵循 .gitignore），收集 TODO 注释作为任务候选。
"""
from __future__ import annotations
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .types import TaskPriority

logger = logging.getLogger('task.todo_scanner')

DEFAULT_FILE_PATTERN = "**/*.{js,jsx,ts,tsx,java,c,cpp,cs,py,go,rb,php}"
DEFAULT_EXCLUDES = ["**/node_modules/**", "**/.git/**", "**/.taskpilot/**"]
PROGRESS_EVERY = 20

# 支持 //、/* */、#、<!-- -->、{/* */}，可带 TODO(<提示>)
TODO_PATTERN = re.compile(
    r'(?:\/\/|\/\*|#|<!--|\{\s*\/\*)\s*TODO(?:\((\w+)\))?:?\s*(.*?)(?:\*\/\s*\}|\*\/|-->|\s*$)',
    re.IGNORECASE,
)

TODO_PRIORITY_HINTS = {
    "high": TaskPriority.HIGH, "h": TaskPriority.HIGH, "1": TaskPriority.HIGH,
    "medium": TaskPriority.MEDIUM, "m": TaskPriority.MEDIUM, "2": TaskPriority.MEDIUM,
    "low": TaskPriority.LOW, "l": TaskPriority.LOW, "3": TaskPriority.LOW,
    "critical": TaskPriority.CRITICAL, "c": TaskPriority.CRITICAL, "0": TaskPriority.CRITICAL,
}

_FILLER_WORDS = {"the", "a", "an", "this", "our", "my", "all", "files", "matching"}
_GLOB_LIKE = re.compile(r"[*?/{]|\.\w+$")
_EXTENSION_MENTION = re.compile(r'\.(js|jsx|ts|tsx|java|c|cpp|cs|py|go|rb|php|md|html|css|scss)\b', re.IGNORECASE)
_FOLDER_MENTION = re.compile(r'\b(src|lib|app|test|tests|docs|components)\b', re.IGNORECASE)


@dataclass
class TodoComment:
    """代码中的一条 TODO 注释"""
    file: str              # 相对工作区的 POSIX 路径
    line: int              # 从 1 开始
    comment: str
    priority_hint: Optional[str] = None


def map_todo_priority(hint: Optional[str], default: TaskPriority) -> TaskPriority:
    """把 TODO(<提示>) 映射为优先级，缺失或无法识别时用默认值"""
    if not hint:
        return default
    return TODO_PRIORITY_HINTS.get(hint.lower(), default)


def find_todos_in_text(text: str, file: str) -> list[TodoComment]:
    """
    逐行查找 TODO 注释

    Args:
        text: 文件内容
        file: 记录在每条结果上的路径

    Returns:
        内容非空的 TODO 注释
    """
    todos = []
    for index, line in enumerate(text.splitlines()):
        match = TODO_PATTERN.search(line)
        if not match:
            continue
        comment = match.group(2).strip()
        if not comment:
            continue
        hint = match.group(1).lower() if match.group(1) else None
        todos.append(TodoComment(file=file, line=index + 1, comment=comment, priority_hint=hint))
    return todos


def parse_gitignore(content: str) -> list[str]:
    """
    把 .gitignore 的各行转换为排除用的 glob

    忽略取反行（!pattern），不支持重新包含。
    """
    patterns = []
    for raw in content.splitlines():
        pattern = raw.strip()
        if not pattern or pattern.startswith('#'):
            continue
        if pattern.startswith('/'):
            pattern = pattern[1:]
        if pattern.startswith('!'):
            continue
        if pattern.endswith('/'):
            pattern = pattern[:-1] + '/**'
        patterns.append(f"**/{pattern}")
    return patterns


def expand_braces(pattern: str) -> list[str]:
    """递归展开 {a,b}："*.{js,ts}" -> ["*.js", "*.ts"]"""
    match = re.search(r'\{([^{}]*)\}', pattern)
    if not match:
        return [pattern]
    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded = []
    for option in match.group(1).split(','):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def glob_to_regex(pattern: str) -> re.Pattern:
    """
    把工作区 glob（**、*、?）编译为匹配 POSIX 相对路径的正则
    """
    parts = []
    i = 0
    while i < len(pattern):
        if pattern.startswith('**/', i):
            parts.append('(?:.*/)?')
            i += 3
        elif pattern.startswith('**', i):
            parts.append('.*')
            i += 2
        elif pattern[i] == '*':
            parts.append('[^/]*')
            i += 1
        elif pattern[i] == '?':
            parts.append('[^/]')
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile('^' + ''.join(parts) + '$')


class GlobMatcher:
    """用一组 glob（已展开花括号）匹配相对路径"""

    def __init__(self, patterns: list[str]):
        self.patterns = patterns
        self._regexes = [
            glob_to_regex(expanded)
            for pattern in patterns
            for expanded in expand_braces(pattern)
        ]

    def matches(self, relative_path: str) -> bool:
        return any(regex.match(relative_path) for regex in self._regexes)


def resolve_file_pattern(utterance: str, captured: Optional[str] = None) -> str:
    """
    根据用户请求确定要扫描的文件

    Args:
        utterance: 完整的请求文本
        captured: "todos in" 之后的文本（如有）

    Returns:
        glob 模式；没有具体要求时为 DEFAULT_FILE_PATTERN
    """
    if captured:
        tokens = [t.strip('\'"`,') for t in captured.split()]
        tokens = [t for t in tokens if t and t.lower() not in _FILLER_WORDS]
        # "the codebase" 继续往下判断，"src/**/*.ts" 原样使用
        if tokens and _GLOB_LIKE.search(tokens[0]) and not tokens[0].startswith('.'):
            pattern = tokens[0]
            if pattern.endswith('/'):
                pattern += '**/*'
            return pattern

    extension = _EXTENSION_MENTION.search(utterance)
    if extension:
        return f"**/*{extension.group(0).lower()}"

    folder = _FOLDER_MENTION.search(utterance)
    if folder:
        return f"{folder.group(0)}/**/*"

    return DEFAULT_FILE_PATTERN


class TodoScanner:
    """
    TODO 扫描器

    按顺序处理文件，每 PROGRESS_EVERY 个文件调用一次 progress(message)。
    """

    def __init__(self, workspace_root: str | Path):
        self.workspace_root = Path(workspace_root).resolve()

    def load_exclusions(self) -> list[str]:
        """默认排除项加上 .gitignore 转换结果"""
        excludes = list(DEFAULT_EXCLUDES)
        gitignore = self.workspace_root / '.gitignore'
        if gitignore.is_file():
            try:
                excludes.extend(parse_gitignore(gitignore.read_text(encoding='utf-8')))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Error reading .gitignore: {e}")
        return excludes

    def find_files(self, pattern: str, excludes: Optional[list[str]] = None) -> list[Path]:
        """
        列出匹配且未被排除的工作区文件

        Args:
            pattern: 包含用的 glob，相对工作区根目录
            excludes: 排除用的 glob（默认 load_exclusions()）

        Returns:
            排序后的文件路径
        """
        include = GlobMatcher([pattern])
        exclude = GlobMatcher(excludes if excludes is not None else self.load_exclusions())

        found = []
        for dirpath, dirnames, filenames in os.walk(self.workspace_root):
            rel_dir = Path(dirpath).relative_to(self.workspace_root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir + "/"
            # 提前剪掉被排除的目录
            dirnames[:] = [
                d for d in dirnames
                if not exclude.matches(f"{rel_dir}{d}/") and not exclude.matches(f"{rel_dir}{d}")
            ]
            for name in filenames:
                rel_path = f"{rel_dir}{name}"
                if include.matches(rel_path) and not exclude.matches(rel_path):
                    found.append(Path(dirpath) / name)

        return sorted(found)

    def scan(
        self,
        pattern: str = DEFAULT_FILE_PATTERN,
        progress: Optional[Callable[[str], None]] = None,
    ) -> tuple[list[TodoComment], int]:
        """
        扫描匹配文件中的 TODO 注释

        Args:
            pattern: 包含用的 glob
            progress: 可选的进度回调

        Returns:
            (TODO 列表, 扫描的文件数)
        """
        files = self.find_files(pattern)
        total = len(files)
        logger.info(f"Scanning {total} files for TODOs (pattern={pattern})")

        todos: list[TodoComment] = []
        for count, file_path in enumerate(files, 1):
            if progress and count % PROGRESS_EVERY == 0:
                progress(f"Scanning progress: {count}/{total} files...")
            try:
                text = file_path.read_text(encoding='utf-8')
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Error scanning file {file_path}: {e}")
                continue
            relative = file_path.relative_to(self.workspace_root).as_posix()
            todos.extend(find_todos_in_text(text, relative))

        logger.info(f"Found {len(todos)} TODOs in {total} files")
        return todos, total
