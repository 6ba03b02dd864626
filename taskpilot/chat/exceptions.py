# -*- coding: utf-8 -*-
"""
对话模块异常定义
"""
from typing import Optional


class LLMClientError(Exception):
    """补全服务错误"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ServiceUnavailableError(LLMClientError):
    """未配置模型，或模型调用失败"""
    pass


class ModelCallAbortedError(LLMClientError):
    """流式输出时收到取消信号，可以重试"""

    retryable = True

    def __init__(self, message: str = "Model call aborted"):
        super().__init__(message)


class APIKeyInvalidError(LLMClientError):
    """API Key 无效 (401/403)"""
    pass


class RateLimitError(LLMClientError):
    """请求被限流 (429)"""
    pass
