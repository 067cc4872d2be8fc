"""Chat completion client for an OpenAI-compatible API (OpenRouter by default).

Direct httpx calls, no SDK. One request per call: failures surface as
UpstreamError and are never retried here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from duet.config import Settings
from duet.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class Completion:
    """The first choice of a chat completion."""

    content: str | None
    reasoning: str | None
    model: str


class CompletionClient:
    """Posts chat completions to {api_base_url}/chat/completions."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._http = http

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        if self._http is not None:
            return
        settings = self._settings

        headers: dict[str, str] = {"content-type": "application/json"}
        if settings.openrouter_api_key:
            headers["authorization"] = f"Bearer {settings.openrouter_api_key}"
        else:
            logger.warning("OPENROUTER_API_KEY is not set -- API calls will fail")

        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=httpx.Timeout(
                connect=settings.api_timeout_connect,
                read=settings.api_timeout_read,
                write=10.0,
                pool=10.0,
            ),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )
        logger.info("httpx client initialized (%s)", settings.api_base_url)

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        **params: Any,
    ) -> Completion:
        """Run one chat completion and return its first choice.

        Extra params (include_reasoning, repetition_penalty, ...) are passed
        through in the request body.
        """
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": self._settings.temperature,
            "top_p": self._settings.top_p,
            **params,
        }

        try:
            response = await self._http.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            raise UpstreamError(f"{model} request failed: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(f"{model} returned HTTP {response.status_code}: {_error_message(response)}")

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"{model} returned a non-JSON response") from e

        # Some providers report errors in the body of an HTTP 200
        if isinstance(data, dict) and data.get("error"):
            raise UpstreamError(f"{model} returned an error: {_error_message(response)}")

        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError(f"{model} returned no choices") from e
        if not isinstance(message, dict):
            raise UpstreamError(f"{model} returned a malformed message")

        content = message.get("content")
        reasoning = message.get("reasoning")
        if not all(v is None or isinstance(v, str) for v in (content, reasoning)):
            raise UpstreamError(f"{model} returned non-text content")

        usage = data.get("usage")
        if usage:
            logger.debug("%s usage: %s", model, usage)

        return Completion(
            content=content,
            reasoning=reasoning,
            model=data.get("model") or model,
        )


def _error_message(response: httpx.Response) -> str:
    try:
        error = response.json().get("error", {})
        if isinstance(error, dict):
            return error.get("message", "unknown error")
        return str(error)
    except (ValueError, AttributeError):
        return response.text[:200] or "unknown error"
