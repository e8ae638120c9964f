"""
Async client for YouTube Live chat (Data API v3).

Two calls:
- get_live_chat_id(): resolve a video's activeLiveChatId
- fetch_messages(): one page of chat messages plus the next page token
  and the server-suggested polling interval

fetch_messages() never raises. API errors and transport failures come back
as an empty ChatFetchResult with ok=False, next_token=None and a conservative
polling interval, so the poller can keep going.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

BASE_URL = "https://www.googleapis.com/youtube/v3"

DEFAULT_INTERVAL_S = 5.0
API_ERROR_INTERVAL_S = 5.0
EXCEPTION_INTERVAL_S = 10.0


@dataclass
class ChatMessage:
    id: str
    author: str
    message: str
    published_at: str = ""


@dataclass
class ChatFetchResult:
    messages: List[ChatMessage] = field(default_factory=list)
    next_token: Optional[str] = None
    polling_interval_s: float = DEFAULT_INTERVAL_S
    ok: bool = True

    @classmethod
    def failed(cls, polling_interval_s: float) -> "ChatFetchResult":
        return cls(messages=[], next_token=None, polling_interval_s=polling_interval_s, ok=False)


class YouTubeChatClient:
    """
    Thin aiohttp wrapper around the liveChat/messages endpoint.

    Usage::

        client = YouTubeChatClient(api_key)
        chat_id = await client.get_live_chat_id("fZqITgdQX_8")
        result = await client.fetch_messages(chat_id)
        result = await client.fetch_messages(chat_id, result.next_token)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        request_timeout_s: float = 10.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.request_timeout_s = request_timeout_s

    async def _get_json(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        query = dict(params)
        query["key"] = self.api_key
        timeout = aiohttp.ClientTimeout(total=self.request_timeout_s)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, params=query) as resp:
                # Error bodies are JSON too; let the caller look at data["error"].
                return await resp.json(content_type=None)

    async def get_live_chat_id(self, video_id: str) -> Optional[str]:
        """Return the active live chat id for a video, or None."""
        try:
            data = await self._get_json(
                "videos",
                {"part": "liveStreamingDetails", "id": video_id},
            )
        except Exception as e:
            logger.error("Error fetching live chat id for video %s: %s", video_id, e)
            return None

        items = data.get("items") or []
        if not items:
            logger.warning("No video found for id %s", video_id)
            return None
        details = items[0].get("liveStreamingDetails") or {}
        return details.get("activeLiveChatId") or None

    async def fetch_messages(
        self,
        live_chat_id: str,
        page_token: Optional[str] = None,
    ) -> ChatFetchResult:
        """Fetch one page of chat messages. Failures come back as ok=False."""
        params = {"liveChatId": live_chat_id, "part": "snippet,authorDetails"}
        if page_token:
            params["pageToken"] = page_token

        try:
            data = await self._get_json("liveChat/messages", params)

            if data.get("error"):
                error = data["error"]
                message = error.get("message", error) if isinstance(error, dict) else error
                logger.warning("YouTube API error: %s", message)
                return ChatFetchResult.failed(API_ERROR_INTERVAL_S)

            messages = [_parse_item(item) for item in data.get("items") or []]
            interval_ms = data.get("pollingIntervalMillis")
            interval_s = float(interval_ms) / 1000.0 if interval_ms else DEFAULT_INTERVAL_S
            return ChatFetchResult(
                messages=messages,
                next_token=data.get("nextPageToken"),
                polling_interval_s=interval_s,
            )
        except Exception as e:
            logger.error("Error fetching chat messages: %s", e)
            return ChatFetchResult.failed(EXCEPTION_INTERVAL_S)


def _parse_item(item: Dict[str, Any]) -> ChatMessage:
    snippet = item.get("snippet") or {}
    author = item.get("authorDetails") or {}
    return ChatMessage(
        id=str(item.get("id", "")),
        author=str(author.get("displayName", "")),
        message=str(snippet.get("displayMessage", "")),
        published_at=str(snippet.get("publishedAt", "")),
    )


def create_chat_client_from_config(config: dict) -> YouTubeChatClient:
    """
    Create a chat client from the config dict.

    The API key is read from the environment variable named by
    youtube.api_key_env (default YOUTUBE_API_KEY).
    """
    yt_cfg = config.get("youtube", {}) or {}
    key_env = yt_cfg.get("api_key_env", "YOUTUBE_API_KEY")
    api_key = os.environ.get(key_env, "").strip()
    if not api_key:
        raise RuntimeError(f"{key_env} is not set (required for YouTube live chat)")

    return YouTubeChatClient(
        api_key=api_key,
        base_url=yt_cfg.get("base_url", BASE_URL),
        request_timeout_s=float(yt_cfg.get("request_timeout_s", 10.0)),
    )
