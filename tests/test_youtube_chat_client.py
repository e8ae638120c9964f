"""
Unit tests for YouTubeChatClient.

The HTTP layer (_get_json) is replaced with an AsyncMock, so these tests
cover response parsing and the error-to-empty-result conversion.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

import aiohttp

from stickbot.core.youtube_chat_client import (
    API_ERROR_INTERVAL_S,
    EXCEPTION_INTERVAL_S,
    ChatFetchResult,
    YouTubeChatClient,
    create_chat_client_from_config,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _item(msg_id, author, text, published="2026-01-01T00:00:00Z"):
    return {
        "id": msg_id,
        "snippet": {"displayMessage": text, "publishedAt": published},
        "authorDetails": {"displayName": author},
    }


def _client(response=None, side_effect=None):
    client = YouTubeChatClient(api_key="test-key")
    client._get_json = AsyncMock(return_value=response, side_effect=side_effect)
    return client


# ---------------------------------------------------------------------------
# fetch_messages
# ---------------------------------------------------------------------------

class TestFetchMessages:

    @pytest.mark.asyncio
    async def test_parses_messages(self):
        client = _client({
            "items": [_item("1", "Alice", "hi"), _item("2", "Bob", "lol")],
            "nextPageToken": "tok-2",
            "pollingIntervalMillis": 7000,
        })
        result = await client.fetch_messages("chat-1", "tok-1")

        assert result.ok is True
        assert [(m.author, m.message) for m in result.messages] == [("Alice", "hi"), ("Bob", "lol")]
        assert result.messages[0].id == "1"
        assert result.messages[0].published_at == "2026-01-01T00:00:00Z"
        assert result.next_token == "tok-2"
        assert result.polling_interval_s == 7.0

    @pytest.mark.asyncio
    async def test_request_params_with_token(self):
        client = _client({"items": []})
        await client.fetch_messages("chat-1", "tok-1")
        path, params = client._get_json.call_args.args
        assert path == "liveChat/messages"
        assert params == {"liveChatId": "chat-1", "part": "snippet,authorDetails", "pageToken": "tok-1"}

    @pytest.mark.asyncio
    async def test_request_params_without_token(self):
        client = _client({"items": []})
        await client.fetch_messages("chat-1")
        _path, params = client._get_json.call_args.args
        assert "pageToken" not in params

    @pytest.mark.asyncio
    async def test_missing_interval_defaults_to_five_seconds(self):
        client = _client({"items": [], "nextPageToken": "t"})
        result = await client.fetch_messages("chat-1")
        assert result.polling_interval_s == 5.0

    @pytest.mark.asyncio
    async def test_missing_items_is_empty(self):
        client = _client({"nextPageToken": "t"})
        result = await client.fetch_messages("chat-1")
        assert result.ok is True
        assert result.messages == []

    @pytest.mark.asyncio
    async def test_api_error_returns_failed_result(self):
        client = _client({"error": {"code": 403, "message": "quotaExceeded"}})
        result = await client.fetch_messages("chat-1", "tok-1")
        assert result.ok is False
        assert result.messages == []
        assert result.next_token is None
        assert result.polling_interval_s == API_ERROR_INTERVAL_S

    @pytest.mark.asyncio
    async def test_transport_error_returns_failed_result(self):
        client = _client(side_effect=aiohttp.ClientError("connection reset"))
        result = await client.fetch_messages("chat-1")
        assert result.ok is False
        assert result.next_token is None
        assert result.polling_interval_s == EXCEPTION_INTERVAL_S

    @pytest.mark.asyncio
    async def test_timeout_returns_failed_result(self):
        client = _client(side_effect=asyncio.TimeoutError())
        result = await client.fetch_messages("chat-1")
        assert result.ok is False
        assert result.polling_interval_s == EXCEPTION_INTERVAL_S

    def test_failed_factory(self):
        result = ChatFetchResult.failed(3.0)
        assert result.ok is False
        assert result.messages == []
        assert result.next_token is None
        assert result.polling_interval_s == 3.0


# ---------------------------------------------------------------------------
# get_live_chat_id
# ---------------------------------------------------------------------------

class TestLiveChatId:

    @pytest.mark.asyncio
    async def test_resolves_active_chat(self):
        client = _client({"items": [{"liveStreamingDetails": {"activeLiveChatId": "chat-xyz"}}]})
        assert await client.get_live_chat_id("vid") == "chat-xyz"
        path, params = client._get_json.call_args.args
        assert path == "videos"
        assert params == {"part": "liveStreamingDetails", "id": "vid"}

    @pytest.mark.asyncio
    async def test_no_items(self):
        client = _client({"items": []})
        assert await client.get_live_chat_id("vid") is None

    @pytest.mark.asyncio
    async def test_not_live(self):
        client = _client({"items": [{"liveStreamingDetails": {}}]})
        assert await client.get_live_chat_id("vid") is None

    @pytest.mark.asyncio
    async def test_exception_returns_none(self):
        client = _client(side_effect=aiohttp.ClientError("dns"))
        assert await client.get_live_chat_id("vid") is None


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class TestConfig:

    def test_reads_key_from_env(self, monkeypatch):
        monkeypatch.setenv("YOUTUBE_API_KEY", "abc")
        client = create_chat_client_from_config({"youtube": {"request_timeout_s": 3}})
        assert client.api_key == "abc"
        assert client.request_timeout_s == 3.0

    def test_custom_env_name(self, monkeypatch):
        monkeypatch.setenv("MY_YT_KEY", "xyz")
        client = create_chat_client_from_config({"youtube": {"api_key_env": "MY_YT_KEY"}})
        assert client.api_key == "xyz"

    def test_missing_key_raises(self, monkeypatch):
        monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)
        with pytest.raises(RuntimeError, match="YOUTUBE_API_KEY"):
            create_chat_client_from_config({})
