# -*- coding: utf-8 -*-
"""
对话模块

- LLM 集成（OpenAI 兼容接口 / Ollama）
- 意图识别与命令分发
"""
from .exceptions import LLMClientError, ModelCallAbortedError, ServiceUnavailableError
from .llm_client import LLMClient, OpenAIClient, OllamaClient
from .completion import CompletionService

__all__ = [
    'LLMClientError',
    'ModelCallAbortedError',
    'ServiceUnavailableError',
    'LLMClient',
    'OpenAIClient',
    'OllamaClient',
    'CompletionService',
]
