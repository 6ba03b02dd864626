# -*- coding: utf-8 -*-
"""
配置管理

依次应用默认值、环境变量、工作区根目录下可选的 taskpilot.yaml。
"""
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger('config.settings')

CONFIG_FILE_NAME = "taskpilot.yaml"
TASK_FILE_TEMPLATES = ("markdown", "json")
PRIORITIES = ("critical", "high", "medium", "low")
LLM_PROVIDERS = ("openai", "ollama", "none")


@dataclass
class TaskConfig:
    """任务存储配置"""
    tasks_location: str = "tasks"
    task_file_template: str = "markdown"  # markdown / json
    default_priority: str = "medium"
    history_window: int = 5


@dataclass
class LLMConfig:
    """LLM 配置"""
    provider: str = "openai"  # openai / ollama / none
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 2000
    timeout: float = 120
    check_timeout: float = 5


@dataclass
class AppConfig:
    """应用配置"""
    workspace_root: str = "."
    data_dir: Optional[str] = None
    log_level: str = "INFO"
    task: TaskConfig = field(default_factory=TaskConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)

    def __post_init__(self) -> None:
        if self.data_dir is None:
            self.data_dir = str(Path(self.workspace_root) / ".taskpilot")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}")
        return default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}")
        return default


def _apply_section(target: Any, section: Any, name: str):
    """把 YAML 映射中已知的键复制到配置 dataclass"""
    if section is None:
        return
    if not isinstance(section, dict):
        logger.warning(f"Ignoring '{name}' section in {CONFIG_FILE_NAME}: not a mapping")
        return
    known = {f.name for f in fields(target)}
    for key, value in section.items():
        if key not in known:
            logger.warning(f"Unknown setting {name}.{key} in {CONFIG_FILE_NAME}")
            continue
        setattr(target, key, value)


def load_config_file(path: Path) -> dict:
    """读取 taskpilot.yaml，文件缺失或无法读取时视为空配置"""
    if not path.is_file():
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: top level must be a mapping")
        return {}
    return data


def validate(config: AppConfig) -> AppConfig:
    """把无效值重置为默认值并记录警告"""
    defaults_task, defaults_llm = TaskConfig(), LLMConfig()

    config.task.default_priority = str(config.task.default_priority).lower()
    if config.task.default_priority not in PRIORITIES:
        logger.warning(f"Invalid default priority {config.task.default_priority!r}, using {defaults_task.default_priority}")
        config.task.default_priority = defaults_task.default_priority

    config.task.task_file_template = str(config.task.task_file_template).lower()
    if config.task.task_file_template not in TASK_FILE_TEMPLATES:
        logger.warning(f"Invalid task file template {config.task.task_file_template!r}, "
                       f"using {defaults_task.task_file_template}")
        config.task.task_file_template = defaults_task.task_file_template

    if not isinstance(config.task.history_window, int) or config.task.history_window < 0:
        logger.warning(f"Invalid history window {config.task.history_window!r}, using {defaults_task.history_window}")
        config.task.history_window = defaults_task.history_window

    config.llm.provider = str(config.llm.provider).lower()
    if config.llm.provider not in LLM_PROVIDERS:
        logger.warning(f"Unknown LLM provider {config.llm.provider!r}, disabling the model")
        config.llm.provider = "none"

    for name in ("temperature", "timeout", "check_timeout"):
        try:
            setattr(config.llm, name, float(getattr(config.llm, name)))
        except (TypeError, ValueError):
            logger.warning(f"Invalid llm.{name}, using default")
            setattr(config.llm, name, getattr(defaults_llm, name))

    return config


def load_config(workspace_root: Optional[str] = None) -> AppConfig:
    """
    加载配置

    Args:
        workspace_root: 覆盖 TASKPILOT_WORKSPACE 或当前目录

    Returns:
        校验后的 AppConfig
    """
    root = workspace_root or os.environ.get('TASKPILOT_WORKSPACE', '.')

    task = TaskConfig(
        tasks_location=os.environ.get('TASKPILOT_TASKS_LOCATION', 'tasks'),
        task_file_template=os.environ.get('TASKPILOT_TASK_FILE_TEMPLATE', 'markdown'),
        default_priority=os.environ.get('TASKPILOT_DEFAULT_PRIORITY', 'medium'),
        history_window=_env_int('TASKPILOT_HISTORY_WINDOW', 5),
    )

    llm = LLMConfig(
        provider=os.environ.get('LLM_PROVIDER', 'openai'),
        api_key=os.environ.get('LLM_API_KEY') or os.environ.get('OPENAI_API_KEY'),
        base_url=os.environ.get('LLM_BASE_URL'),
        model=os.environ.get('LLM_MODEL', 'gpt-4o-mini'),
        temperature=_env_float('LLM_TEMPERATURE', 0.2),
        max_tokens=_env_int('LLM_MAX_TOKENS', 2000),
        timeout=_env_float('LLM_TIMEOUT', 120),
        check_timeout=_env_float('LLM_CHECK_TIMEOUT', 5),
    )

    config = AppConfig(
        workspace_root=root,
        data_dir=os.environ.get('TASKPILOT_DATA_DIR'),
        log_level=os.environ.get('LOG_LEVEL', 'INFO'),
        task=task,
        llm=llm,
    )

    file_config = load_config_file(Path(root) / CONFIG_FILE_NAME)
    _apply_section(config.task, file_config.get('task'), 'task')
    _apply_section(config.llm, file_config.get('llm'), 'llm')
    if 'log_level' in file_config:
        config.log_level = str(file_config['log_level'])

    # openai 没有 key 无法工作
    if config.llm.provider == "openai" and not config.llm.api_key:
        logger.info("No LLM API key configured, running without a model")
        config.llm.provider = "none"

    return validate(config)
