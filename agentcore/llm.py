"""
Agent Core — Reasoning Backend Seam

The executor only ever calls `backend.generate(prompt, options)` and
gets back a GenerationResult or an AdapterError. Everything vendor
specific (HTTP, auth, retry/backoff) lives behind that line.

Usage:
    from agentcore.llm import ChatModelBackend, create_chat_model

    backend = ChatModelBackend(create_chat_model("openai", "gpt-4o-mini"))
    result = backend.generate("List the files in src/")
    result.content, result.usage

    # Dry runs and tests
    backend = ScriptedBackend(['<tool name="filesystem" action="list"/>', "done"])

Providers (lazy imports, install the matching extra):
    openai  → langchain-openai         (OPENAI_API_KEY)
    azure   → langchain-openai         (AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY)
    google  → langchain-google-genai   (GOOGLE_API_KEY)
"""

from __future__ import annotations

import logging
import os
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage

from agentcore.errors import AdapterError

logger = logging.getLogger("agentcore.llm")


@dataclass
class GenerationResult:
    content: str
    usage: dict[str, Any] = field(default_factory=dict)


class ReasoningBackend(Protocol):
    def generate(self, prompt: str, options: dict[str, Any] | None = None) -> GenerationResult:
        ...


# ═══════════════════════════════════════════════════════════════════
# LangChain chat model backend
# ═══════════════════════════════════════════════════════════════════

class ChatModelBackend:
    """
    Wraps a LangChain BaseChatModel.

    Transient failures are retried here with exponential backoff
    (base * 2^attempt, capped, ±jitter). Once attempts are exhausted the
    last exception is surfaced as AdapterError; the executor never
    retries a backend call itself.
    """

    def __init__(
        self,
        model: BaseChatModel,
        max_attempts: int = 2,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        jitter: float = 0.2,
        provider: str = "",
    ):
        self.model = model
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.jitter = jitter
        self.provider = provider or type(model).__name__

    def _delay(self, attempt: int) -> float:
        delay = min(self.backoff_base * (2 ** attempt), self.backoff_max)
        return max(0.0, delay * (1 + random.uniform(-self.jitter, self.jitter)))

    def generate(self, prompt: str, options: dict[str, Any] | None = None) -> GenerationResult:
        options = options or {}
        last_error: Exception | None = None

        for attempt in range(self.max_attempts):
            try:
                response = self.model.invoke([HumanMessage(content=prompt)], **options)
            except Exception as e:
                last_error = e
                logger.warning(
                    "Backend call failed (attempt %d/%d, %s): %s",
                    attempt + 1, self.max_attempts, self.provider, e,
                )
                if attempt + 1 < self.max_attempts:
                    time.sleep(self._delay(attempt))
                continue

            content = response.content if hasattr(response, "content") else str(response)
            if isinstance(content, list):
                # Multi-part content blocks; keep the text parts.
                content = "".join(
                    part.get("text", "") if isinstance(part, dict) else str(part)
                    for part in content
                )
            usage = dict(getattr(response, "usage_metadata", None) or {})
            return GenerationResult(content=content, usage=usage)

        raise AdapterError(
            f"{type(last_error).__name__}: {last_error}",
            provider=self.provider,
            attempts=self.max_attempts,
        )


# ═══════════════════════════════════════════════════════════════════
# Scripted backend
# ═══════════════════════════════════════════════════════════════════

class ScriptedBackend:
    """
    Replays canned responses in order.

    An item that is an Exception instance is raised instead of returned.
    When the script runs out the last response repeats, or AdapterError
    is raised for an empty script. Prompts are kept in `.prompts`.
    """

    def __init__(self, responses: Iterable[str | Exception]):
        self._responses = list(responses)
        self._index = 0
        self._lock = threading.Lock()
        self.prompts: list[str] = []

    def generate(self, prompt: str, options: dict[str, Any] | None = None) -> GenerationResult:
        with self._lock:
            self.prompts.append(prompt)
            if not self._responses:
                raise AdapterError("Scripted backend has no responses", provider="scripted")
            item = self._responses[min(self._index, len(self._responses) - 1)]
            self._index += 1

        if isinstance(item, Exception):
            raise item
        return GenerationResult(
            content=item,
            usage={"input_tokens": len(prompt) // 4, "output_tokens": len(item) // 4},
        )


# ═══════════════════════════════════════════════════════════════════
# Provider factories (lazy imports)
# ═══════════════════════════════════════════════════════════════════

def _create_openai(model: str, temperature: float, **kwargs) -> BaseChatModel:
    from langchain_openai import ChatOpenAI
    return ChatOpenAI(model=model, temperature=temperature, **kwargs)


def _create_azure(model: str, temperature: float, **kwargs) -> BaseChatModel:
    from langchain_openai import AzureChatOpenAI
    return AzureChatOpenAI(
        azure_deployment=model,
        azure_endpoint=os.environ["AZURE_OPENAI_ENDPOINT"],
        api_key=os.environ.get("AZURE_OPENAI_API_KEY"),
        api_version=os.environ.get("AZURE_OPENAI_VERSION", "2024-12-01-preview"),
        temperature=temperature,
        **kwargs,
    )


def _create_google(model: str, temperature: float, **kwargs) -> BaseChatModel:
    from langchain_google_genai import ChatGoogleGenerativeAI
    return ChatGoogleGenerativeAI(model=model, temperature=temperature, **kwargs)


_PROVIDERS = {
    "openai": _create_openai,
    "azure": _create_azure,
    "google": _create_google,
}


def create_chat_model(
    provider: str = "",
    model: str = "gpt-4o-mini",
    temperature: float = 0.1,
    **kwargs,
) -> BaseChatModel:
    """
    Create a chat model for the given provider.

    `provider` falls back to the LLM_PROVIDER env var, then "openai".
    """
    provider = (provider or os.environ.get("LLM_PROVIDER", "") or "openai").lower().strip()
    factory = _PROVIDERS.get(provider)
    if factory is None:
        raise ValueError(
            f"Unknown LLM provider: {provider!r}. Supported: {', '.join(sorted(_PROVIDERS))}"
        )
    logger.info("Creating chat model: provider=%s model=%s", provider, model)
    return factory(model, temperature, **kwargs)


def create_backend_from_config(llm_cfg: dict[str, Any]) -> ChatModelBackend:
    """Build a ChatModelBackend from the `llm` block of CoreConfig."""
    provider = llm_cfg.get("provider", "")
    chat_model = create_chat_model(
        provider=provider,
        model=llm_cfg.get("model", "gpt-4o-mini"),
        temperature=float(llm_cfg.get("temperature", 0.1)),
    )
    return ChatModelBackend(
        chat_model,
        max_attempts=int(llm_cfg.get("max_attempts", 2)),
        backoff_base=float(llm_cfg.get("backoff_base", 1.0)),
        provider=provider,
    )
