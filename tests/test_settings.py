# -*- coding: utf-8 -*-
"""
Configuration tests
"""
from pathlib import Path
from unittest.mock import patch

import pytest

from taskpilot.chat.completion import create_completion_service
from taskpilot.config.settings import AppConfig, LLMConfig, load_config

ENV_VARS = [
    "TASKPILOT_WORKSPACE", "TASKPILOT_TASKS_LOCATION", "TASKPILOT_TASK_FILE_TEMPLATE",
    "TASKPILOT_DEFAULT_PRIORITY", "TASKPILOT_HISTORY_WINDOW", "TASKPILOT_DATA_DIR",
    "LLM_PROVIDER", "LLM_API_KEY", "OPENAI_API_KEY", "LLM_BASE_URL", "LLM_MODEL",
    "LLM_TEMPERATURE", "LLM_MAX_TOKENS", "LLM_TIMEOUT", "LLM_CHECK_TIMEOUT", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Defaults, environment and taskpilot.yaml"""

    def test_defaults(self, tmp_path):
        config = load_config(str(tmp_path))

        assert config.task.tasks_location == "tasks"
        assert config.task.task_file_template == "markdown"
        assert config.task.default_priority == "medium"
        assert config.task.history_window == 5
        assert config.data_dir == str(Path(tmp_path) / ".taskpilot")
        # openai without a key runs without a model
        assert config.llm.provider == "none"

    def test_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TASKPILOT_TASKS_LOCATION", ".tasks")
        monkeypatch.setenv("TASKPILOT_DEFAULT_PRIORITY", "HIGH")
        monkeypatch.setenv("TASKPILOT_HISTORY_WINDOW", "3")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.7")
        monkeypatch.setenv("LLM_MAX_TOKENS", "not-a-number")

        config = load_config(str(tmp_path))

        assert config.task.tasks_location == ".tasks"
        assert config.task.default_priority == "high"
        assert config.task.history_window == 3
        assert config.llm.provider == "openai"
        assert config.llm.api_key == "sk-test"
        assert config.llm.temperature == 0.7
        assert config.llm.max_tokens == 2000

    def test_workspace_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TASKPILOT_WORKSPACE", str(tmp_path))
        assert load_config().workspace_root == str(tmp_path)

    def test_yaml_overrides_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TASKPILOT_TASK_FILE_TEMPLATE", "markdown")
        (tmp_path / "taskpilot.yaml").write_text(
            "log_level: DEBUG\n"
            "task:\n"
            "  task_file_template: json\n"
            "  unknown_key: 1\n"
            "llm:\n"
            "  provider: ollama\n"
            "  model: llama3\n",
            encoding="utf-8",
        )

        config = load_config(str(tmp_path))

        assert config.task.task_file_template == "json"
        assert config.llm.provider == "ollama"
        assert config.llm.model == "llama3"
        assert config.log_level == "DEBUG"

    def test_invalid_values_reset(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TASKPILOT_DEFAULT_PRIORITY", "urgent")
        monkeypatch.setenv("TASKPILOT_TASK_FILE_TEMPLATE", "html")
        monkeypatch.setenv("LLM_PROVIDER", "mystery")

        config = load_config(str(tmp_path))

        assert config.task.default_priority == "medium"
        assert config.task.task_file_template == "markdown"
        assert config.llm.provider == "none"

    def test_broken_yaml_ignored(self, tmp_path):
        (tmp_path / "taskpilot.yaml").write_text("task: [unclosed\n", encoding="utf-8")
        assert load_config(str(tmp_path)).task.tasks_location == "tasks"

    def test_explicit_data_dir(self):
        assert AppConfig(workspace_root="/w", data_dir="/d").data_dir == "/d"


class TestCompletionServiceFactory:
    """Model availability"""

    def test_disabled(self):
        assert create_completion_service(LLMConfig(provider="none")).available is False

    def test_unreachable_service_means_no_model(self):
        with patch("taskpilot.chat.llm_client.OllamaClient.is_available", return_value=False):
            service = create_completion_service(LLMConfig(provider="ollama"))
        assert service.available is False

    def test_reachable_model(self):
        with patch("taskpilot.chat.llm_client.OllamaClient.is_available", return_value=True):
            service = create_completion_service(LLMConfig(provider="ollama", model="llama3", temperature=0.5))
        assert service.available is True
        assert service.client.model == "llama3"
        assert service.temperature == 0.5
