# -*- coding: utf-8 -*-
"""
命令分发器

单条对话消息的入口：去掉 @ 提及前缀，识别意图，再路由到任务动作或交给语言模型。
"""
from __future__ import annotations
import asyncio
import logging
import re
import threading
from typing import Callable, Optional

from .action_router import ActionRouter
from .completion import CompletionService
from .exceptions import LLMClientError, ModelCallAbortedError
from .history import ConversationHistory
from .intent_classifier import IntentClassifier, IntentType
from .prompts import GENERAL_HELP, HELP_MESSAGE, MODEL_ABORTED_MESSAGE, SYSTEM_PROMPT, UNEXPECTED_ERROR_MESSAGE

logger = logging.getLogger('chat.dispatcher')

# "@taskpilot create a task to ..." -> "create a task to ..."
MENTION_PATTERN = re.compile(r'^\s*@[\w-]+\s+')


def strip_framing(utterance: str) -> str:
    return MENTION_PATTERN.sub('', utterance or '').strip()


class CommandDispatcher:
    """
    命令分发器

    任务命令不会发给模型；自由提问连同 SYSTEM_PROMPT 和最近的对话历史发给补全服务。
    模型失败时降级为 HELP_MESSAGE。
    """

    def __init__(
        self,
        router: ActionRouter,
        completion: CompletionService,
        classifier: Optional[IntentClassifier] = None,
        history_window: int = 5,
    ):
        self.router = router
        self.completion = completion
        self.classifier = classifier or IntentClassifier()
        self.history = ConversationHistory(max_exchanges=history_window)

    async def dispatch(
        self,
        utterance: str,
        on_chunk: Optional[Callable[[str], None]] = None,
        on_progress: Optional[Callable[[str], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        处理一条消息

        Args:
            utterance: 用户原始输入
            on_chunk: 接收模型的流式输出
            on_progress: 接收耗时动作的进度信息
            cancel_event: 被设置时中止正在进行的模型调用

        Returns:
            完整的回复文本
        """
        text = strip_framing(utterance)
        if not text:
            return GENERAL_HELP

        intent = self.classifier.classify(text)
        logger.info(f"Intent: {intent.type.value} {intent.params}")

        try:
            if intent.type == IntentType.UNKNOWN:
                response = await self._ask_model(text, on_chunk, cancel_event)
            else:
                result = await self.router.route(intent, on_progress)
                response = result.message
        except Exception:
            logger.exception(f"Unexpected error handling: {text[:100]}")
            return UNEXPECTED_ERROR_MESSAGE

        # 固定的兜底回复不进入模型上下文
        if response not in (HELP_MESSAGE, MODEL_ABORTED_MESSAGE):
            self.history.add(text, response)
        return response

    def build_messages(self, text: str) -> list[dict]:
        """系统提示（以 assistant 消息发送）、最近历史、当前问题"""
        return [
            {"role": "assistant", "content": SYSTEM_PROMPT},
            *self.history.to_messages(),
            {"role": "user", "content": text},
        ]

    async def _ask_model(
        self,
        text: str,
        on_chunk: Optional[Callable[[str], None]],
        cancel_event: Optional[threading.Event],
    ) -> str:
        messages = self.build_messages(text)
        try:
            return await asyncio.to_thread(self._stream, messages, on_chunk, cancel_event)
        except ModelCallAbortedError:
            logger.info("Model call aborted")
            return MODEL_ABORTED_MESSAGE
        except LLMClientError as e:
            logger.warning(f"Model unavailable, replying with help: {e}")
            return HELP_MESSAGE

    def _stream(
        self,
        messages: list[dict],
        on_chunk: Optional[Callable[[str], None]],
        cancel_event: Optional[threading.Event],
    ) -> str:
        chunks = []
        for chunk in self.completion.send_request(messages, cancel_event):
            chunks.append(chunk)
            if on_chunk:
                on_chunk(chunk)
        return "".join(chunks)
