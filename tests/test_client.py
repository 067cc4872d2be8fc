"""Tests for duet.api.client: chat completions over httpx.

The httpx client is an AsyncMock returning real httpx.Response objects.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from duet.api.client import CompletionClient
from duet.errors import UpstreamError
from tests.conftest import make_settings


def _response(status_code: int = 200, body=None, text: str | None = None) -> httpx.Response:
    request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
    if text is not None:
        return httpx.Response(status_code=status_code, text=text, request=request)
    return httpx.Response(status_code=status_code, json=body if body is not None else {}, request=request)


def _choice(content=None, reasoning=None) -> dict:
    message = {"role": "assistant", "content": content}
    if reasoning is not None:
        message["reasoning"] = reasoning
    return {"model": "served/model", "choices": [{"message": message}], "usage": {"total_tokens": 12}}


def _client(response: httpx.Response | None = None, error: Exception | None = None) -> tuple[CompletionClient, AsyncMock]:
    http = AsyncMock(spec=httpx.AsyncClient)
    if error is not None:
        http.post.side_effect = error
    else:
        http.post.return_value = response
    return CompletionClient(make_settings(temperature=0.5, top_p=0.9), http=http), http


class TestComplete:
    @pytest.mark.asyncio
    async def test_parses_first_choice(self):
        client, _ = _client(_response(body=_choice(content="hi", reasoning="thinking")))
        completion = await client.complete("m", [{"role": "user", "content": "q"}])
        assert completion.content == "hi"
        assert completion.reasoning == "thinking"
        assert completion.model == "served/model"

    @pytest.mark.asyncio
    async def test_payload(self):
        client, http = _client(_response(body=_choice(content="ok")))
        messages = [{"role": "user", "content": "q"}]
        await client.complete("deepseek/deepseek-r1", messages, include_reasoning=True)

        http.post.assert_awaited_once()
        args, kwargs = http.post.call_args
        assert args[0] == "/chat/completions"
        assert kwargs["json"] == {
            "model": "deepseek/deepseek-r1",
            "messages": messages,
            "temperature": 0.5,
            "top_p": 0.9,
            "include_reasoning": True,
        }

    @pytest.mark.asyncio
    async def test_missing_reasoning_is_none(self):
        client, _ = _client(_response(body=_choice(content="ok")))
        completion = await client.complete("m", [])
        assert completion.reasoning is None

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client, _ = _client(_response(429, body={"error": {"message": "Rate limit exceeded"}}))
        with pytest.raises(UpstreamError, match="HTTP 429: Rate limit exceeded"):
            await client.complete("m", [])

    @pytest.mark.asyncio
    async def test_http_error_with_text_body(self):
        client, _ = _client(_response(502, text="Bad Gateway"))
        with pytest.raises(UpstreamError, match="HTTP 502: Bad Gateway"):
            await client.complete("m", [])

    @pytest.mark.asyncio
    async def test_error_in_200_body(self):
        client, _ = _client(_response(200, body={"error": {"message": "Provider returned error"}}))
        with pytest.raises(UpstreamError, match="Provider returned error"):
            await client.complete("m", [])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"choices": []}, {"choices": [{}]}, {"choices": [{"message": "x"}]}])
    async def test_malformed_body(self, body):
        client, _ = _client(_response(body=body))
        with pytest.raises(UpstreamError):
            await client.complete("m", [])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content, reasoning",
        [([{"type": "text", "text": "hi"}], None), ("ok", {"steps": []}), (42, None)],
    )
    async def test_non_text_content(self, content, reasoning):
        client, _ = _client(_response(body=_choice(content=content, reasoning=reasoning)))
        with pytest.raises(UpstreamError, match="non-text content"):
            await client.complete("m", [])

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client, _ = _client(_response(200, text="<html>"))
        with pytest.raises(UpstreamError, match="non-JSON"):
            await client.complete("m", [])

    @pytest.mark.asyncio
    async def test_transport_error(self):
        client, http = _client(error=httpx.ConnectError("connection refused"))
        with pytest.raises(UpstreamError, match="ConnectError"):
            await client.complete("m", [])
        assert http.post.await_count == 1

    @pytest.mark.asyncio
    async def test_requires_start(self):
        client = CompletionClient(make_settings())
        with pytest.raises(RuntimeError, match="start"):
            await client.complete("m", [])


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_sets_auth_and_base_url(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test")
        client = CompletionClient(make_settings())
        await client.start()
        try:
            assert client._http.headers["authorization"] == "Bearer sk-or-test"
            assert str(client._http.base_url).startswith("https://openrouter.ai/api/v1")
        finally:
            await client.close()
        assert client._http is None

    @pytest.mark.asyncio
    async def test_start_without_key_warns(self, monkeypatch, caplog):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        client = CompletionClient(make_settings())
        await client.start()
        try:
            assert "authorization" not in client._http.headers
            assert "OPENROUTER_API_KEY is not set" in caplog.text
        finally:
            await client.close()
