# -*- coding: utf-8 -*-
"""
对话历史

自由提问时随消息一起发送的最近几轮对话。
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Exchange:
    user: str
    assistant: str
    timestamp: datetime = field(default_factory=datetime.now)


class ConversationHistory:
    """只保留最近 max_exchanges 轮对话"""

    def __init__(self, max_exchanges: int = 5):
        self.max_exchanges = max_exchanges
        self._exchanges: deque[Exchange] = deque(maxlen=max_exchanges)

    def add(self, user: str, assistant: str):
        # 跳过空轮次
        if not user.strip() or not assistant.strip():
            return
        self._exchanges.append(Exchange(user, assistant))

    def exchanges(self) -> list[Exchange]:
        return list(self._exchanges)

    def to_messages(self) -> list[dict]:
        """展开为 user/assistant 交替的消息列表"""
        messages = []
        for exchange in self._exchanges:
            messages.append({"role": "user", "content": exchange.user})
            messages.append({"role": "assistant", "content": exchange.assistant})
        return messages

    def clear(self):
        self._exchanges.clear()

    def __len__(self) -> int:
        return len(self._exchanges)
