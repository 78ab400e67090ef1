"""Completion backends: OpenAI-compatible HTTP API and a local echo backend."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from goal_graph.config import LlmSettings

logger = logging.getLogger(__name__)


class BackendCallError(RuntimeError):
    """Backend call error exposing the HTTP status when there was one."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CompletionBackend(Protocol):
    """Protocol implemented by generative backends."""

    def complete(self, prompt: str) -> str:
        """Return the model response text for ``prompt``."""


class OpenAiChatBackend:
    """Chat-completions client for OpenAI-compatible endpoints."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("API key is required for the OpenAI chat backend")
        self.model = model
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def complete(self, prompt: str) -> str:
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            response = self._client.post(self._url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise BackendCallError(
                f"Chat completion failed with status {status_code}: {exc.response.text[:400]}",
                status_code=status_code,
            ) from exc
        except httpx.TimeoutException as exc:
            raise BackendCallError(f"Chat completion timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise BackendCallError(f"Chat completion transport error: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendCallError("Chat completion returned non-JSON response") from exc
        return _extract_content(payload)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> OpenAiChatBackend:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class EchoBackend:
    """Deterministic backend for local runs: echoes the first prompt lines."""

    def __init__(self, *, max_lines: int = 3) -> None:
        self.max_lines = max_lines
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        lines = [line.strip() for line in prompt.splitlines() if line.strip()]
        return "\n".join(lines[: self.max_lines]) or "(empty prompt)"


def build_backend(
    settings: LlmSettings,
    *,
    transport: httpx.BaseTransport | None = None,
) -> CompletionBackend:
    """Construct the backend selected by ``settings.backend``."""

    if settings.backend == "echo":
        return EchoBackend()
    if settings.backend == "openai":
        logger.debug(
            "Using OpenAI-compatible backend %s (model=%s)",
            settings.base_url,
            settings.model,
        )
        return OpenAiChatBackend(
            api_key=settings.api_key,
            model=settings.model,
            base_url=settings.base_url,
            timeout_seconds=settings.timeout_seconds,
            transport=transport,
        )
    raise ValueError(f"Unsupported LLM backend: {settings.backend!r}")


def _extract_content(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise BackendCallError("Chat completion response must be a JSON object")
    choices = payload.get("choices") or []
    if not choices:
        raise BackendCallError("Chat completion response missing choices")

    message = choices[0].get("message", {})
    content = message.get("content")
    if isinstance(content, str):
        text = content.strip()
    elif isinstance(content, list):
        text = "".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and isinstance(item.get("text"), str)
        ).strip()
    else:
        text = ""

    if not text:
        raise BackendCallError("Chat completion response content is empty")
    return text
