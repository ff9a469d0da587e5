"""LLM client — HTTP connection to a chat model that narrates battles.

The orchestrator injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str) -> str: ...

`stage` is the transition type being narrated (e.g. "BATTLE_START",
"VICTORY"). Implementations may use it for logging; none route on it.

Two implementations are provided:

    HttpLLM   — real HTTP client, supports the Anthropic Messages API and
                 OpenAI-compatible chat completions. Selected by provider_format.
    EchoLLM   — returns the prompt back unchanged. Selected with NARRATOR=echo
                 to run the hook end-to-end without an API key.

Tests use StubLLM (defined in the test helpers) instead.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

from jrpg_visualizer.prompts import JRPG_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-opus-4-5-20251101"
ANTHROPIC_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["anthropic", "openai"]


class HttpLLM:
    """Async HTTP client for chat-style narration backends.

    Supported formats:
      "anthropic"  — POST /v1/messages  {"model", "max_tokens", "system", "messages"}
                     Response: {"content": [{"type": "text", "text": "..."}]}
      "openai"     — POST /v1/chat/completions  {"model", "max_tokens", "messages"}
                     Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        api_key:         API key, or empty string if not required.
        provider_url:    Base URL of the backend. Defaults to the Anthropic API.
        provider_format: Wire format to use. Defaults to "anthropic".
        model:           Model identifier.
        max_tokens:      Completion budget per narration.
        system:          System prompt sent with every request.
        timeout:         HTTP timeout in seconds. Defaults to 60.
    """

    def __init__(
        self,
        api_key: str = "",
        provider_url: str = ANTHROPIC_URL,
        provider_format: ProviderFormat = "anthropic",
        model: str = DEFAULT_MODEL,
        max_tokens: int = 500,
        system: str = JRPG_SYSTEM_PROMPT,
        timeout: float = 60.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._max_tokens = max_tokens
        self._system = system
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._format == "anthropic":
            headers["anthropic-version"] = ANTHROPIC_VERSION
            if self._api_key:
                headers["x-api-key"] = self._api_key
        elif self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            return url, {
                "model": self._model,
                "max_tokens": self._max_tokens,
                "messages": [
                    {"role": "system", "content": self._system},
                    {"role": "user", "content": prompt},
                ],
            }

        # anthropic (default)
        url = f"{self._base_url}/v1/messages"
        return url, {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": self._system,
            "messages": [{"role": "user", "content": prompt}],
        }

    def _parse_response(self, data: object) -> str:
        """Extract the completion text from the response body."""
        if self._format == "openai":
            choices = data.get("choices") if isinstance(data, dict) else None
            first = choices[0] if isinstance(choices, list) and choices else None
            message = first.get("message") if isinstance(first, dict) else None
            content = message.get("content") if isinstance(message, dict) else None
            if not isinstance(content, str):
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return content

        # anthropic
        blocks = data.get("content") if isinstance(data, dict) else None
        for block in blocks if isinstance(blocks, list) else []:
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str):
                return block["text"]
        raise LLMError("Unexpected response format from Anthropic backend")

    async def __call__(self, stage: str, prompt: str) -> str:
        url, body = self._build_request(prompt)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"LLM request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned invalid JSON") from e
        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM — returns the prompt unchanged; no network calls
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the prompt text as-is. No network calls.

    Lets you verify the hook wiring (detection, storage writes, dashboard
    push) end-to-end without an API key. The "narration" is just the prompt.
    """

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt


# ---------------------------------------------------------------------------
# LLMError — raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
