"""Completion client for Groq, OpenAI-compatible endpoints and Anthropic.

The evaluator only depends on the ``CompleteFn`` contract:
``complete(system, user, options) -> Completion``. ``LLMClient.complete``
is the production implementation; tests pass plain async functions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from daoeval.config import LLMSettings
from daoeval.errors import LLMCallError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float = 0.3
    max_tokens: int = 4000


@dataclass(frozen=True)
class Completion:
    text: str
    usage_tokens: int | None = None


CompleteFn = Callable[[str, str, CompletionOptions], Awaitable[Completion]]


class LLMClient:
    """Unified async LLM client. Groq is reached through its OpenAI-compatible API."""

    def __init__(self, settings: LLMSettings | None = None):
        self.settings = settings or LLMSettings.from_env()
        self.provider = self.settings.provider
        self.model = self.settings.model
        self._client: Any = None
        self._init_client()

    def _init_client(self) -> None:
        if self.provider == "anthropic":
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self.settings.api_key)
        elif self.provider in ("groq", "openai", "openai_compatible"):
            import openai
            kwargs: dict[str, Any] = {}
            if self.settings.api_key:
                kwargs["api_key"] = self.settings.api_key
            if self.settings.base_url:
                kwargs["base_url"] = self.settings.base_url
            self._client = openai.AsyncOpenAI(**kwargs)
        else:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")

    @property
    def default_options(self) -> CompletionOptions:
        return CompletionOptions(
            temperature=self.settings.temperature, max_tokens=self.settings.max_tokens,
        )

    async def complete(self, system: str, user: str, options: CompletionOptions) -> Completion:
        """Send system+user messages, return the reply text and token usage."""
        try:
            if self.provider == "anthropic":
                response = await self._client.messages.create(
                    model=self.model,
                    max_tokens=options.max_tokens,
                    temperature=options.temperature,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                )
                text = "".join(
                    block.text for block in response.content if getattr(block, "type", "") == "text"
                )
                usage = response.usage
                tokens = (usage.input_tokens + usage.output_tokens) if usage else None
            else:
                response = await self._client.chat.completions.create(
                    model=self.model,
                    max_tokens=options.max_tokens,
                    temperature=options.temperature,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                )
                text = response.choices[0].message.content if response.choices else ""
                tokens = response.usage.total_tokens if response.usage else None
        except Exception as exc:
            raise LLMCallError(f"LLM API call failed: {exc}", retryable=True) from exc

        log.debug("Completion from %s: %d chars, %s tokens", self.model, len(text or ""), tokens)
        return Completion(text=text or "", usage_tokens=tokens)
