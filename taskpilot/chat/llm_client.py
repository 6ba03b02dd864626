# -*- coding: utf-8 -*-
"""
LLM 客户端

支持 OpenAI 兼容的 chat completions 接口和本地 Ollama 模型。
"""
import http.client
import json
import logging
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from typing import Generator, Optional

from .exceptions import APIKeyInvalidError, LLMClientError, RateLimitError

logger = logging.getLogger('chat.llm')


def _http_error(provider: str, e: urllib.error.HTTPError) -> LLMClientError:
    """把 HTTP 错误映射为对应的 LLMClientError 子类"""
    try:
        body = e.read().decode('utf-8')
    except (UnicodeDecodeError, OSError):
        body = "No error body"
    logger.error(f"{provider} HTTP error {e.code}: {body}")
    message = f"{provider} API error ({e.code}): {body}"
    if e.code in (401, 403):
        return APIKeyInvalidError(message, status_code=e.code, response_body=body)
    if e.code == 429:
        return RateLimitError(message, status_code=e.code, response_body=body)
    return LLMClientError(message, status_code=e.code, response_body=body)


class LLMClient(ABC):
    """LLM 客户端基类"""

    @abstractmethod
    def generate(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 2000,
        response_format: Optional[dict] = None
    ) -> str:
        """生成回复

        Args:
            messages: 消息列表（{role, content}）
            temperature: 温度参数
            max_tokens: 最大 token 数
            response_format: 如 {"type": "json_object"}
        """
        raise NotImplementedError("Subclasses must implement generate()")

    @abstractmethod
    def stream_generate(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 2000
    ) -> Generator[str, None, None]:
        """流式生成回复"""
        raise NotImplementedError("Subclasses must implement stream_generate()")

    @abstractmethod
    def is_available(self, timeout: float = 5.0) -> bool:
        """检查服务是否可达，不抛出异常"""
        raise NotImplementedError("Subclasses must implement is_available()")


class OpenAIClient(LLMClient):
    """OpenAI 兼容 API 客户端"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: float = 120
    ):
        self.api_key = api_key
        self.base_url = (base_url or "https://api.openai.com/v1").rstrip('/')
        self.model = model
        self.timeout = timeout

    def _request(self, path: str, data: Optional[dict] = None) -> urllib.request.Request:
        return urllib.request.Request(
            f"{self.base_url}{path}",
            data=json.dumps(data, ensure_ascii=False).encode('utf-8') if data is not None else None,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}"
            },
            method="POST" if data is not None else "GET"
        )

    def generate(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 2000,
        response_format: Optional[dict] = None
    ) -> str:
        data = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format:
            data["response_format"] = response_format

        try:
            with urllib.request.urlopen(self._request("/chat/completions", data), timeout=self.timeout) as response:
                result = json.loads(response.read().decode('utf-8'))
                return result["choices"][0]["message"]["content"]
        except urllib.error.HTTPError as e:
            raise _http_error("OpenAI", e) from e
        except (urllib.error.URLError, OSError, ValueError, KeyError, IndexError) as e:
            logger.error(f"OpenAI API error: {e}")
            raise LLMClientError(f"OpenAI API error: {e}") from e

    def stream_generate(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 2000
    ) -> Generator[str, None, None]:
        """通过 SSE 流式输出"""
        data = {
            "model": self.model,
            "messages": [m for m in messages if m.get("content")],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": True
        }

        logger.debug(f"OpenAI stream request: model={self.model}, messages={len(data['messages'])}")

        try:
            with urllib.request.urlopen(self._request("/chat/completions", data), timeout=self.timeout) as response:
                for line in response:
                    line = line.decode('utf-8').strip()
                    if not line or line.startswith(':'):
                        continue
                    if line.startswith('data: '):
                        line = line[6:]
                    if line == '[DONE]':
                        break
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(chunk, dict):
                        continue
                    choices = chunk.get("choices")
                    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
                        content = (choices[0].get("delta") or {}).get("content")
                        if content:
                            yield content
        except urllib.error.HTTPError as e:
            raise _http_error("OpenAI", e) from e
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as e:
            logger.error(f"OpenAI stream error: {e}")
            raise LLMClientError(f"OpenAI stream error: {e}") from e

    def is_available(self, timeout: float = 5.0) -> bool:
        try:
            with urllib.request.urlopen(self._request("/models"), timeout=timeout) as response:
                return 200 <= response.status < 300
        except (urllib.error.URLError, OSError) as e:
            logger.info(f"OpenAI availability check failed: {e}")
            return False


class OllamaClient(LLMClient):
    """Ollama 本地模型客户端"""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:14b",
        timeout: float = 300
    ):
        self.base_url = (base_url or "http://localhost:11434").rstrip('/')
        self.model = model
        self.timeout = timeout

    def _chat_request(self, messages: list[dict], temperature: float, max_tokens: int,
                      stream: bool, json_format: bool = False) -> urllib.request.Request:
        data = {
            "model": self.model,
            "messages": messages,
            "stream": stream,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            }
        }
        if json_format:
            data["format"] = "json"
        return urllib.request.Request(
            f"{self.base_url}/api/chat",
            data=json.dumps(data, ensure_ascii=False).encode('utf-8'),
            headers={"Content-Type": "application/json"},
            method="POST"
        )

    def generate(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 2000,
        response_format: Optional[dict] = None
    ) -> str:
        json_format = bool(response_format and response_format.get("type") == "json_object")
        req = self._chat_request(messages, temperature, max_tokens, stream=False, json_format=json_format)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                result = json.loads(response.read().decode('utf-8'))
                return result["message"]["content"]
        except urllib.error.HTTPError as e:
            raise _http_error("Ollama", e) from e
        except (urllib.error.URLError, OSError, ValueError, KeyError) as e:
            logger.error(f"Ollama error: {e}")
            raise LLMClientError(f"Ollama error: {e}") from e

    def stream_generate(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 2000
    ) -> Generator[str, None, None]:
        req = self._chat_request(messages, temperature, max_tokens, stream=True)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                for line in response:
                    line = line.decode('utf-8').strip()
                    if not line:
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(chunk, dict):
                        continue
                    message = chunk.get("message")
                    if isinstance(message, dict) and message.get("content"):
                        yield message["content"]
        except urllib.error.HTTPError as e:
            raise _http_error("Ollama", e) from e
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as e:
            logger.error(f"Ollama stream error: {e}")
            raise LLMClientError(f"Ollama stream error: {e}") from e

    def is_available(self, timeout: float = 5.0) -> bool:
        try:
            with urllib.request.urlopen(f"{self.base_url}/api/tags", timeout=timeout) as response:
                return 200 <= response.status < 300
        except (urllib.error.URLError, OSError) as e:
            logger.info(f"Ollama availability check failed: {e}")
            return False


def create_llm_client(
    provider: str = "openai",
    **kwargs
) -> LLMClient:
    """
    创建 LLM 客户端

    Args:
        provider: "openai" 或 "ollama"
        **kwargs: 客户端参数

    Returns:
        LLMClient 实例
    """
    if provider == "openai":
        return OpenAIClient(**kwargs)
    elif provider == "ollama":
        return OllamaClient(**kwargs)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")
