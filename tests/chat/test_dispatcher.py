# -*- coding: utf-8 -*-
"""
Command dispatcher tests

End-to-end through classification, routing and the completion service.
"""
import threading
from unittest.mock import MagicMock, patch

import pytest

from taskpilot.chat.completion import CompletionService
from taskpilot.chat.dispatcher import strip_framing
from taskpilot.chat.exceptions import LLMClientError, ModelCallAbortedError, ServiceUnavailableError
from taskpilot.chat.history import ConversationHistory
from taskpilot.chat.llm_client import LLMClient, OllamaClient, OpenAIClient
from taskpilot.chat.prompts import (
    FEATURE_HELP,
    GENERAL_HELP,
    HELP_MESSAGE,
    MODEL_ABORTED_MESSAGE,
    SYSTEM_PROMPT,
    UNEXPECTED_ERROR_MESSAGE,
)
from taskpilot.config.settings import AppConfig
from taskpilot.context import create_app_context


class FakeClient(LLMClient):
    """Scripted streaming client"""

    def __init__(self, chunks=None, error=None, on_chunk=None):
        self.chunks = chunks or ["Hello", " there"]
        self.error = error
        self.on_chunk = on_chunk
        self.calls = []

    def generate(self, messages, temperature=0.2, max_tokens=2000, response_format=None):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return "".join(self.chunks)

    def stream_generate(self, messages, temperature=0.2, max_tokens=2000):
        self.calls.append(messages)
        for chunk in self.chunks:
            if self.error:
                raise self.error
            if self.on_chunk:
                self.on_chunk(chunk)
            yield chunk

    def is_available(self, timeout=5.0):
        return True


def _context(tmp_path, client=None, template="markdown"):
    settings = AppConfig(workspace_root=str(tmp_path))
    settings.task.task_file_template = template
    return create_app_context(settings, completion=CompletionService(client))


class TestTaskCommandsEndToEnd:
    """Task commands never reach the model"""

    @pytest.mark.asyncio
    async def test_init_create_list(self, tmp_path):
        client = FakeClient()
        dispatcher = _context(tmp_path, client).dispatcher

        await dispatcher.dispatch("Initialize task tracking for this project")
        created = await dispatcher.dispatch("Create a task to write the README")
        listing = await dispatcher.dispatch("List all tasks")

        assert "TASK-001" in created
        assert "### Open Tasks (1)" in listing
        assert "write the README" in listing
        assert (tmp_path / "tasks" / "tasks.json").exists()
        assert (tmp_path / "tasks" / "TASK-001.md").exists()
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_json_template_writes_no_mirrors(self, tmp_path):
        dispatcher = _context(tmp_path, template="json").dispatcher

        await dispatcher.dispatch("initialize task tracking")
        await dispatcher.dispatch("create a task to ship it")

        assert not (tmp_path / "tasks" / "TASK-001.md").exists()
        assert (tmp_path / "tasks" / "README.md").exists()

    @pytest.mark.asyncio
    async def test_mention_stripped(self, tmp_path):
        dispatcher = _context(tmp_path).dispatcher
        response = await dispatcher.dispatch("@taskpilot create a task to add tests")
        assert "TASK-001" in response

    @pytest.mark.asyncio
    async def test_empty_input(self, tmp_path):
        dispatcher = _context(tmp_path).dispatcher
        assert await dispatcher.dispatch("   ") == GENERAL_HELP
        assert await dispatcher.dispatch("@taskpilot ") == GENERAL_HELP

    @pytest.mark.asyncio
    async def test_feature_help(self, tmp_path):
        client = FakeClient()
        dispatcher = _context(tmp_path, client).dispatcher

        assert await dispatcher.dispatch("How do I create a task?") == FEATURE_HELP["task-creation"]
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_programming_question_reaches_model(self, tmp_path):
        client = FakeClient(chunks=["Use functools.wraps"])
        dispatcher = _context(tmp_path, client).dispatcher

        assert await dispatcher.dispatch("How do I write a decorator in Python?") == "Use functools.wraps"
        assert len(client.calls) == 1


class TestFreeFormQuestions:
    """Model fallback"""

    @pytest.mark.asyncio
    async def test_no_model_replies_with_help(self, tmp_path):
        dispatcher = _context(tmp_path).dispatcher

        response = await dispatcher.dispatch("Explain dependency injection")

        assert response == HELP_MESSAGE
        assert len(dispatcher.history) == 0

    @pytest.mark.asyncio
    async def test_streaming(self, tmp_path):
        client = FakeClient(chunks=["Dependency ", "injection ", "is..."])
        dispatcher = _context(tmp_path, client).dispatcher
        chunks = []

        response = await dispatcher.dispatch("Explain dependency injection", on_chunk=chunks.append)

        assert response == "Dependency injection is..."
        assert chunks == ["Dependency ", "injection ", "is..."]
        messages = client.calls[0]
        assert messages[0] == {"role": "assistant", "content": SYSTEM_PROMPT}
        assert messages[-1] == {"role": "user", "content": "Explain dependency injection"}
        assert len(dispatcher.history) == 1

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, tmp_path):
        client = FakeClient(chunks=["ok"])
        dispatcher = _context(tmp_path, client).dispatcher

        for n in range(8):
            await dispatcher.dispatch(f"question number {n}")

        # system prompt + 5 exchanges + the new question
        assert len(client.calls[-1]) == 12
        assert client.calls[-1][1]["content"] == "question number 2"

    @pytest.mark.asyncio
    async def test_model_error_replies_with_help(self, tmp_path):
        client = FakeClient(error=LLMClientError("boom", status_code=500))
        dispatcher = _context(tmp_path, client).dispatcher

        assert await dispatcher.dispatch("Explain monads") == HELP_MESSAGE

    @pytest.mark.asyncio
    async def test_undecodable_stream_replies_with_help(self, tmp_path):
        client = OpenAIClient(api_key="sk-test", base_url="http://llm.invalid/v1")
        response = MagicMock()
        response.__enter__.return_value = [b"data: \xff\xfe bad\n"]
        dispatcher = _context(tmp_path, client).dispatcher

        with patch("taskpilot.chat.llm_client.urllib.request.urlopen", return_value=response):
            assert await dispatcher.dispatch("Explain monads") == HELP_MESSAGE
        assert len(dispatcher.history) == 0

    @pytest.mark.asyncio
    async def test_any_client_failure_replies_with_help(self, tmp_path):
        client = FakeClient(error=RuntimeError("socket went away"))
        dispatcher = _context(tmp_path, client).dispatcher

        assert await dispatcher.dispatch("Explain monads") == HELP_MESSAGE

    @pytest.mark.asyncio
    async def test_aborted(self, tmp_path):
        cancel_event = threading.Event()
        client = FakeClient(chunks=["one", "two", "three"], on_chunk=lambda chunk: cancel_event.set())
        dispatcher = _context(tmp_path, client).dispatcher

        response = await dispatcher.dispatch("Explain monads", cancel_event=cancel_event)

        assert response == MODEL_ABORTED_MESSAGE
        assert len(dispatcher.history) == 0

    @pytest.mark.asyncio
    async def test_unexpected_error(self, tmp_path):
        dispatcher = _context(tmp_path).dispatcher
        dispatcher.router.route = MagicMock(side_effect=RuntimeError("kaboom"))

        assert await dispatcher.dispatch("list tasks") == UNEXPECTED_ERROR_MESSAGE


class TestCompletionService:
    """Streaming wrapper"""

    def test_no_client(self):
        service = CompletionService(None)
        assert service.available is False
        with pytest.raises(ServiceUnavailableError):
            list(service.send_request([{"role": "user", "content": "hi"}]))
        with pytest.raises(ServiceUnavailableError):
            service.complete([{"role": "user", "content": "hi"}])

    def test_client_error_wrapped(self):
        service = CompletionService(FakeClient(error=LLMClientError("bad gateway", status_code=502)))
        with pytest.raises(ServiceUnavailableError) as exc_info:
            list(service.send_request([{"role": "user", "content": "hi"}]))
        assert exc_info.value.status_code == 502

    def test_other_errors_wrapped(self):
        service = CompletionService(FakeClient(error=KeyError("choices")))
        with pytest.raises(ServiceUnavailableError):
            list(service.send_request([{"role": "user", "content": "hi"}]))
        with pytest.raises(ServiceUnavailableError):
            service.complete([{"role": "user", "content": "hi"}])

    def test_cancel_before_first_chunk(self):
        cancel_event = threading.Event()
        cancel_event.set()
        service = CompletionService(FakeClient())
        with pytest.raises(ModelCallAbortedError):
            list(service.send_request([{"role": "user", "content": "hi"}], cancel_event))

    def test_complete(self):
        client = FakeClient(chunks=["[", "]"])
        assert CompletionService(client).complete([{"role": "user", "content": "x"}]) == "[]"

    def test_aborted_is_retryable(self):
        error = ModelCallAbortedError()
        assert error.retryable is True
        assert str(error) == "Model call aborted"


class TestHelpers:
    def test_strip_framing(self):
        assert strip_framing("@taskpilot  list tasks ") == "list tasks"
        assert strip_framing("email me@example.com") == "email me@example.com"
        assert strip_framing(None) == ""

    def test_history_window(self):
        history = ConversationHistory(max_exchanges=2)
        history.add("a", "1")
        history.add("", "skipped")
        history.add("b", "2")
        history.add("c", "3")
        assert [m["content"] for m in history.to_messages()] == ["b", "2", "c", "3"]
        history.clear()
        assert len(history) == 0


class TestStreamParsing:
    """Raw stream bodies through the real clients"""

    @staticmethod
    def _response(lines):
        response = MagicMock()
        response.__enter__.return_value = lines
        return response

    def test_openai_skips_noise(self):
        client = OpenAIClient(api_key="sk-test", base_url="http://llm.invalid/v1")
        lines = [
            b": keep-alive\n",
            b"data: [1, 2]\n",
            b'data: {"choices": []}\n',
            b'data: {"choices": [{"delta": {"content": "Hi"}}]}\n',
            b"data: not json\n",
            b"data: [DONE]\n",
            b'data: {"choices": [{"delta": {"content": "late"}}]}\n',
        ]
        with patch("taskpilot.chat.llm_client.urllib.request.urlopen", return_value=self._response(lines)):
            assert list(client.stream_generate([{"role": "user", "content": "hi"}])) == ["Hi"]

    def test_openai_bad_bytes_raise_client_error(self):
        client = OpenAIClient(api_key="sk-test", base_url="http://llm.invalid/v1")
        lines = [b'data: {"choices": [{"delta": {"content": "Hi"}}]}\n', b"data: \xff\xfe\n"]
        with patch("taskpilot.chat.llm_client.urllib.request.urlopen", return_value=self._response(lines)):
            stream = client.stream_generate([{"role": "user", "content": "hi"}])
            assert next(stream) == "Hi"
            with pytest.raises(LLMClientError):
                next(stream)

    def test_ollama_bad_bytes_raise_client_error(self):
        client = OllamaClient(base_url="http://llm.invalid")
        lines = [b'{"message": {"content": "Hi"}}\n', b'"just a string"\n', b"\xff\xfe\n"]
        with patch("taskpilot.chat.llm_client.urllib.request.urlopen", return_value=self._response(lines)):
            stream = client.stream_generate([{"role": "user", "content": "hi"}])
            assert next(stream) == "Hi"
            with pytest.raises(LLMClientError):
                next(stream)

    def test_completion_wraps_bad_bytes(self):
        client = OllamaClient(base_url="http://llm.invalid")
        with patch("taskpilot.chat.llm_client.urllib.request.urlopen", return_value=self._response([b"\xff\n"])):
            with pytest.raises(ServiceUnavailableError):
                list(CompletionService(client).send_request([{"role": "user", "content": "hi"}]))
