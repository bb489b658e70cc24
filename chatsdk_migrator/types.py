"""Source record types for the Stream Chat to ChatSDK migration tool.

The Stream SDK returns loosely typed dicts. The extraction adapter converts
them into the frozen dataclasses below so that importers only ever see
explicit fields. Required fields raise :class:`ExtractionError` when absent;
optional fields carry the defaults documented on each record.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from chatsdk_migrator.exceptions import ExtractionError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a Stream timestamp into an aware ``datetime``.

    Accepts ISO 8601 strings with a ``Z`` suffix and fractional seconds of
    any precision (Stream emits nanoseconds), or ``datetime`` objects.
    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat only accepts up to microseconds on older interpreters
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _require(data: Mapping[str, Any], key: str, record: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ExtractionError(f"{record} record is missing required field '{key}'")
    return value


def _nested_id(value: Any) -> str | None:
    """Return ``value["id"]`` for embedded user objects, else None."""
    if isinstance(value, Mapping):
        nested = value.get("id")
        return str(nested) if nested else None
    return None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

# Keys Stream returns on every user; everything else is a custom field
USER_BUILTIN_FIELDS = frozenset(
    {
        "id",
        "name",
        "image",
        "role",
        "teams",
        "created_at",
        "updated_at",
        "last_active",
        "deactivated_at",
        "deleted_at",
        "banned",
        "online",
        "invisible",
        "language",
        "shadow_banned",
        "push_notifications",
        "channel_mutes",
        "mutes",
        "devices",
        "unread_count",
        "total_unread_count",
        "unread_channels",
        "blocked_user_ids",
    }
)


@dataclass(frozen=True)
class SourceUser:
    """A user from ``query_users``.

    ``name`` may be None (importer falls back to ``id``); ``custom_data``
    defaults to an empty dict and holds every non-builtin top-level key.
    """

    id: str
    name: str | None = None
    image: str | None = None
    custom_data: dict[str, Any] = field(default_factory=dict)
    last_active: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> SourceUser:
        custom = {k: v for k, v in data.items() if k not in USER_BUILTIN_FIELDS}
        return cls(
            id=str(_require(data, "id", "user")),
            name=data.get("name") or None,
            image=data.get("image") or None,
            custom_data=custom,
            last_active=parse_timestamp(data.get("last_active")),
            created_at=parse_timestamp(data.get("created_at")),
        )


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceMember:
    """A channel member; ``role`` None means the default member role."""

    user_id: str
    role: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> SourceMember:
        user_id = data.get("user_id") or _nested_id(data.get("user"))
        if not user_id:
            raise ExtractionError("member record is missing required field 'user_id'")
        return cls(
            user_id=str(user_id),
            role=data.get("channel_role") or data.get("role") or None,
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass(frozen=True)
class SourceChannel:
    """A channel from ``query_channels`` together with its member roster."""

    type: str
    id: str
    cid: str
    name: str | None = None
    image: str | None = None
    description: str | None = None
    created_by_id: str | None = None
    last_message_at: datetime | None = None
    created_at: datetime | None = None
    members: tuple[SourceMember, ...] = ()

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> SourceChannel:
        """Build from a ``query_channels`` entry (``{"channel": ..., "members": ...}``).

        A bare channel dict is accepted as well.
        """
        channel = data.get("channel", data)
        channel_type = str(_require(channel, "type", "channel"))
        channel_id = str(_require(channel, "id", "channel"))
        members = data.get("members")
        if members is None:
            members = channel.get("members") or []
        return cls(
            type=channel_type,
            id=channel_id,
            cid=channel.get("cid") or f"{channel_type}:{channel_id}",
            name=channel.get("name") or None,
            image=channel.get("image") or None,
            description=channel.get("description") or None,
            created_by_id=_nested_id(channel.get("created_by")),
            last_message_at=parse_timestamp(channel.get("last_message_at")),
            created_at=parse_timestamp(channel.get("created_at")),
            members=tuple(SourceMember.from_api(m) for m in members),
        )


# ---------------------------------------------------------------------------
# Messages and reactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceReaction:
    """One entry of a message's ``latest_reactions``."""

    type: str | None = None
    user_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> SourceReaction:
        return cls(
            type=data.get("type") or None,
            user_id=data.get("user_id") or _nested_id(data.get("user")),
            created_at=parse_timestamp(data.get("created_at")),
        )


def _group_counts(groups: Any) -> dict[str, int]:
    """Flatten ``reaction_groups`` (emoji -> {count, ...}) to emoji -> count."""
    if not isinstance(groups, Mapping):
        return {}
    counts: dict[str, int] = {}
    for emoji, group in groups.items():
        if isinstance(group, Mapping):
            counts[emoji] = int(group.get("count") or 0)
        elif isinstance(group, int):
            counts[emoji] = group
    return counts


@dataclass(frozen=True)
class SourceMessage:
    """A message from a channel query page."""

    id: str
    user_id: str | None = None
    text: str | None = None
    attachments: list[Any] = field(default_factory=list)
    parent_id: str | None = None
    quoted_message_id: str | None = None
    reaction_counts: dict[str, int] = field(default_factory=dict)
    reaction_groups: dict[str, int] = field(default_factory=dict)
    latest_reactions: tuple[SourceReaction, ...] = ()
    reply_count: int = 0
    pinned: bool = False
    pinned_at: datetime | None = None
    pinned_by_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> SourceMessage:
        return cls(
            id=str(_require(data, "id", "message")),
            user_id=data.get("user_id") or _nested_id(data.get("user")),
            text=data.get("text") or None,
            attachments=list(data.get("attachments") or []),
            parent_id=data.get("parent_id") or None,
            quoted_message_id=data.get("quoted_message_id") or None,
            reaction_counts={
                k: int(v or 0) for k, v in (data.get("reaction_counts") or {}).items()
            },
            reaction_groups=_group_counts(data.get("reaction_groups")),
            latest_reactions=tuple(
                SourceReaction.from_api(r) for r in data.get("latest_reactions") or []
            ),
            reply_count=int(data.get("reply_count") or 0),
            pinned=bool(data.get("pinned", False)),
            pinned_at=parse_timestamp(data.get("pinned_at")),
            pinned_by_id=_nested_id(data.get("pinned_by")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            deleted_at=parse_timestamp(data.get("deleted_at")),
        )

    @property
    def sort_key(self) -> datetime:
        """Chronological sort key; undated messages sort first."""
        return self.created_at or EPOCH
