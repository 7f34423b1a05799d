"""
Agent Core — Reasoning Backend Tests

ChatModelBackend over LangChain's fake chat model (no network), retry
and AdapterError surfacing, the scripted backend and provider lookup.
"""

import os
import sys
import unittest
from unittest.mock import MagicMock, patch

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage

from agentcore.errors import AdapterError
from agentcore.llm import ChatModelBackend, ScriptedBackend, create_chat_model


class TestChatModelBackend(unittest.TestCase):

    def test_generate_with_fake_model(self):
        model = GenericFakeChatModel(messages=iter([AIMessage(content="<tool name=\"git\" action=\"status\"></tool>")]))
        result = ChatModelBackend(model).generate("check the repo")
        self.assertEqual(result.content, '<tool name="git" action="status"></tool>')

    def test_usage_metadata(self):
        message = AIMessage(
            content="ok",
            usage_metadata={"input_tokens": 10, "output_tokens": 2, "total_tokens": 12},
        )
        model = MagicMock()
        model.invoke.return_value = message
        result = ChatModelBackend(model).generate("hi")
        self.assertEqual(result.usage["total_tokens"], 12)

    def test_content_blocks_joined(self):
        model = MagicMock()
        model.invoke.return_value = AIMessage(content=[{"type": "text", "text": "a"}, {"type": "text", "text": "b"}])
        self.assertEqual(ChatModelBackend(model).generate("hi").content, "ab")

    @patch("agentcore.llm.time.sleep")
    def test_retry_then_success(self, sleep):
        model = MagicMock()
        model.invoke.side_effect = [RuntimeError("429 Too Many Requests"), AIMessage(content="ok")]
        result = ChatModelBackend(model, max_attempts=2).generate("hi")
        self.assertEqual(result.content, "ok")
        self.assertEqual(model.invoke.call_count, 2)
        sleep.assert_called_once()

    @patch("agentcore.llm.time.sleep")
    def test_exhausted_attempts_raise_adapter_error(self, sleep):
        model = MagicMock()
        model.invoke.side_effect = RuntimeError("connection reset")
        backend = ChatModelBackend(model, max_attempts=3, provider="openai")
        with self.assertRaises(AdapterError) as ctx:
            backend.generate("hi")
        self.assertIn("connection reset", str(ctx.exception))
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(ctx.exception.provider, "openai")
        self.assertEqual(sleep.call_count, 2)

    def test_backoff_is_capped(self):
        backend = ChatModelBackend(MagicMock(), backoff_base=1.0, backoff_max=5.0, jitter=0.0)
        self.assertEqual(backend._delay(0), 1.0)
        self.assertEqual(backend._delay(1), 2.0)
        self.assertEqual(backend._delay(10), 5.0)


class TestScriptedBackend(unittest.TestCase):

    def test_replays_then_repeats_last(self):
        backend = ScriptedBackend(["one", "two"])
        self.assertEqual([backend.generate("p").content for _ in range(3)], ["one", "two", "two"])
        self.assertEqual(backend.prompts, ["p", "p", "p"])

    def test_exception_items_raise(self):
        backend = ScriptedBackend([AdapterError("down"), "ok"])
        with self.assertRaises(AdapterError):
            backend.generate("p")
        self.assertEqual(backend.generate("p").content, "ok")

    def test_empty_script(self):
        with self.assertRaises(AdapterError):
            ScriptedBackend([]).generate("p")


class TestProviders(unittest.TestCase):

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            create_chat_model(provider="acme")

    def test_env_fallback(self):
        with patch.dict(os.environ, {"LLM_PROVIDER": "acme"}):
            with self.assertRaises(ValueError) as ctx:
                create_chat_model()
        self.assertIn("acme", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
