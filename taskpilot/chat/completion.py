# -*- coding: utf-8 -*-
"""
补全服务

对可选 LLMClient 的薄封装。所有失败都以 ServiceUnavailableError 抛出，
取消信号以 ModelCallAbortedError 抛出。
"""
import logging
import threading
from typing import Iterator, Optional

from .exceptions import LLMClientError, ModelCallAbortedError, ServiceUnavailableError
from .llm_client import LLMClient, create_llm_client

logger = logging.getLogger('chat.completion')


class CompletionService:
    """补全服务"""

    def __init__(self, client: Optional[LLMClient] = None,
                 temperature: float = 0.2, max_tokens: int = 2000):
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def available(self) -> bool:
        return self.client is not None

    def _require_client(self) -> LLMClient:
        if self.client is None:
            raise ServiceUnavailableError("No language model is configured")
        return self.client

    def send_request(
        self,
        messages: list[dict],
        cancel_event: Optional[threading.Event] = None
    ) -> Iterator[str]:
        """
        流式获取回复

        Args:
            messages: [{role: user|assistant, content}]
            cancel_event: 每个分片之间检查一次

        Yields:
            文本分片

        Raises:
            ModelCallAbortedError: cancel_event 已被设置
            ServiceUnavailableError: 没有客户端，或客户端调用失败
        """
        client = self._require_client()
        try:
            for chunk in client.stream_generate(messages, self.temperature, self.max_tokens):
                if cancel_event is not None and cancel_event.is_set():
                    raise ModelCallAbortedError()
                yield chunk
        except (ModelCallAbortedError, ServiceUnavailableError):
            raise
        except LLMClientError as e:
            raise ServiceUnavailableError(str(e), status_code=e.status_code, response_body=e.response_body) from e
        except Exception as e:
            logger.warning(f"Completion stream failed: {e!r}")
            raise ServiceUnavailableError(f"Completion stream failed: {e}") from e

        if cancel_event is not None and cancel_event.is_set():
            raise ModelCallAbortedError()

    def complete(self, messages: list[dict], json_output: bool = False) -> str:
        """
        非流式请求

        Raises:
            ServiceUnavailableError: 没有客户端，或客户端调用失败
        """
        client = self._require_client()
        response_format = {"type": "json_object"} if json_output else None
        try:
            return client.generate(messages, self.temperature, self.max_tokens, response_format)
        except LLMClientError as e:
            logger.warning(f"Completion request failed: {e}")
            raise ServiceUnavailableError(str(e), status_code=e.status_code, response_body=e.response_body) from e
        except Exception as e:
            logger.warning(f"Completion request failed: {e!r}")
            raise ServiceUnavailableError(f"Completion request failed: {e}") from e


def create_completion_service(llm_config) -> CompletionService:
    """
    根据 LLMConfig 创建补全服务

    provider 为 "none" 或服务不可达时返回没有客户端的服务，调用方随之降级为确定性行为。
    """
    provider = (llm_config.provider or "none").lower()
    if provider == "none":
        logger.info("Language model disabled")
        return CompletionService(None)

    kwargs = {"base_url": llm_config.base_url, "model": llm_config.model, "timeout": llm_config.timeout}
    if provider == "openai":
        kwargs["api_key"] = llm_config.api_key
    try:
        client = create_llm_client(provider, **{k: v for k, v in kwargs.items() if v is not None and v != ""})
    except (ValueError, TypeError) as e:
        logger.warning(f"Could not create LLM client: {e}")
        return CompletionService(None)

    if not client.is_available(llm_config.check_timeout):
        logger.warning(f"LLM provider '{provider}' is not reachable, continuing without a model")
        return CompletionService(None)

    return CompletionService(client, llm_config.temperature, llm_config.max_tokens)
