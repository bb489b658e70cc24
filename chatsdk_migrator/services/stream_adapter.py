"""Extraction adapter for the Stream Chat server API.

Wraps a ``stream_chat.StreamChat`` client and exposes three lazy,
restartable generators of bounded batches (users, channels, messages of one
channel). Responses are converted to the explicit records of
:mod:`chatsdk_migrator.types` here, at the boundary.

Network failures are not caught: they propagate to the orchestrator, which
treats them as fatal for the run.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from stream_chat import StreamChat

from chatsdk_migrator.constants import (
    DEFAULT_CHANNEL_BATCH_SIZE,
    DEFAULT_MESSAGE_BATCH_SIZE,
    DEFAULT_USER_BATCH_SIZE,
)
from chatsdk_migrator.exceptions import ExtractionError
from chatsdk_migrator.types import SourceChannel, SourceMessage, SourceUser
from chatsdk_migrator.utils.logging import log_api_request, log_api_response


def _page(response: Mapping[str, Any] | None, key: str, endpoint: str) -> list[Any]:
    if response is None:
        raise ExtractionError(f"{endpoint} returned no response")
    if key not in response:
        raise ExtractionError(f"{endpoint} response has no '{key}' field")
    items = response[key]
    if not isinstance(items, list):
        raise ExtractionError(f"{endpoint} response field '{key}' is not a list")
    return items


class StreamAdapter:
    """Paginated read access to a Stream Chat application."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_credentials(cls, api_key: str, api_secret: str) -> StreamAdapter:
        """Build an adapter around a server-side StreamChat client."""
        return cls(StreamChat(api_key=api_key, api_secret=api_secret))

    # -- Users ----------------------------------------------------------------

    def users(self, batch_size: int = DEFAULT_USER_BATCH_SIZE) -> Iterator[list[SourceUser]]:
        """Yield every user ordered by id, ``batch_size`` at a time."""
        offset = 0
        while True:
            params = {"limit": batch_size, "offset": offset}
            log_api_request("query_users", "users", params)
            response = self._client.query_users({}, {"id": 1}, **params)
            raw_users = _page(response, "users", "query_users")
            log_api_response("users", len(raw_users), raw_users)

            if not raw_users:
                return
            yield [SourceUser.from_api(u) for u in raw_users]
            if len(raw_users) < batch_size:
                return
            offset += batch_size

    # -- Channels -------------------------------------------------------------

    def channels(
        self,
        channel_ids: list[str] | None = None,
        batch_size: int = DEFAULT_CHANNEL_BATCH_SIZE,
    ) -> Iterator[list[SourceChannel]]:
        """Yield channels (with members), optionally restricted to ``channel_ids``."""
        filter_conditions: dict[str, Any] = (
            {"id": {"$in": list(channel_ids)}} if channel_ids else {}
        )
        offset = 0
        while True:
            params = {"limit": batch_size, "offset": offset}
            log_api_request(
                "query_channels", "channels", {**params, "filter": filter_conditions}
            )
            response = self._client.query_channels(
                filter_conditions, {"last_message_at": -1}, **params
            )
            raw_channels = _page(response, "channels", "query_channels")
            log_api_response("channels", len(raw_channels), raw_channels)

            if not raw_channels:
                return
            yield [SourceChannel.from_api(c) for c in raw_channels]
            if len(raw_channels) < batch_size:
                return
            offset += batch_size

    # -- Messages -------------------------------------------------------------

    def channel_messages(
        self,
        channel_type: str,
        channel_id: str,
        batch_size: int = DEFAULT_MESSAGE_BATCH_SIZE,
    ) -> Iterator[list[SourceMessage]]:
        """Yield a channel's messages from newest to oldest page.

        Each page asks for messages strictly older (``id_lt``) than the
        oldest message of the previous page.
        """
        channel = self._client.channel(channel_type, channel_id)
        cursor: str | None = None
        cid = f"{channel_type}:{channel_id}"
        while True:
            message_options: dict[str, Any] = {"limit": batch_size}
            if cursor is not None:
                message_options["id_lt"] = cursor
            log_api_request("channel.query", cid, message_options, channel=cid)
            response = channel.query(messages=message_options)
            raw_messages = _page(response, "messages", "channel.query")
            log_api_response(cid, len(raw_messages), raw_messages, channel=cid)

            if not raw_messages:
                return
            messages = [SourceMessage.from_api(m) for m in raw_messages]
            yield messages
            if len(raw_messages) < batch_size:
                return
            cursor = min(messages, key=lambda m: m.sort_key).id

    # -- Validation -----------------------------------------------------------

    def check_connection(self, sample_size: int = 10) -> dict[str, int]:
        """Fetch one small page of users and channels to verify credentials."""
        users = next(iter(self.users(sample_size)), [])
        channels = next(iter(self.channels(batch_size=sample_size)), [])
        return {"users": len(users), "channels": len(channels)}
