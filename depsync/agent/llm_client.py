"""Chat-completion client for the advisory risk verdict, backed by litellm."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import litellm
import structlog

log = structlog.get_logger("depsync.agent.llm")


@dataclass
class LLMResponse:
    """Text of one completion plus usage accounting."""

    content: str = ""
    model: str = ""
    stop_reason: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0


def _to_response(raw: Any, model: str, latency_ms: int) -> LLMResponse:
    choices = getattr(raw, "choices", None) or []
    if not choices:
        return LLMResponse(model=model, latency_ms=latency_ms)
    first = choices[0]
    usage = getattr(raw, "usage", None)
    return LLMResponse(
        content=(first.message.content or "").strip(),
        model=getattr(raw, "model", None) or model,
        stop_reason=first.finish_reason or "",
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        latency_ms=latency_ms,
    )


class LLMClient:
    """One-shot chat completions through ``litellm.acompletion()``.

    Any provider litellm supports works; keys come from the provider's
    usual environment variables (``OPENAI_API_KEY``, ``ANTHROPIC_API_KEY``)
    unless *api_key* is given. An OpenAI-compatible gateway can be used by
    passing *api_base*.
    """

    def __init__(
        self,
        default_model: str = "gpt-4o-mini",
        api_key: str | None = None,
        *,
        api_base: str | None = None,
        num_retries: int = 0,
    ) -> None:
        self.default_model = default_model
        self._api_key = api_key
        self._api_base = api_base
        self._num_retries = num_retries

    async def create(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Run *messages* after a *system* prompt and return the first choice."""
        model = model or self.default_model
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "system", "content": system}, *messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        if self._num_retries:
            kwargs["num_retries"] = self._num_retries

        started = time.monotonic()
        raw = await litellm.acompletion(**kwargs)
        resp = _to_response(raw, model, int((time.monotonic() - started) * 1000))
        log.debug(
            "llm.completion",
            model=resp.model,
            input_tokens=resp.input_tokens,
            output_tokens=resp.output_tokens,
            latency_ms=resp.latency_ms,
            stop_reason=resp.stop_reason,
        )
        return resp
