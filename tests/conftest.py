"""Shared test fixtures for the chatsdk_migrator test suite.

Two in-memory fakes stand in for the external systems:

* ``FakeStreamClient`` mimics the parts of ``stream_chat.StreamChat`` the
  extraction adapter calls (``query_users``, ``query_channels`` and
  ``channel(...).query``), including offset and ``id_lt`` pagination.
* ``InMemoryDatabase`` mimics ``chatsdk_migrator.services.database.Database``.
  It enforces the primary and unique keys of the ChatSDK schema, honours
  ``ON CONFLICT ... DO NOTHING``, rolls back failed transactions and answers
  the SQL statements the importers issue.
"""

from __future__ import annotations

import copy
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from chatsdk_migrator.core.config import MigrationConfig
from chatsdk_migrator.core.context import MigrationContext
from chatsdk_migrator.core.migrator import APP_LOOKUP_SQL, ChatSDKMigrator
from chatsdk_migrator.services.channel_importer import UPDATE_MEMBER_COUNT_SQL
from chatsdk_migrator.services.message_importer import (
    CHANNEL_MEMBERS_SQL,
    EXISTING_MESSAGES_SQL,
    MAX_SEQ_SQL,
    UPDATE_CHANNEL_STATS_SQL,
)
from chatsdk_migrator.services.reaction_importer import (
    EXISTING_REACTIONS_SQL,
    UPDATE_REACTION_COUNT_SQL,
)
from chatsdk_migrator.services.stream_adapter import StreamAdapter

APP_ID = "app-1"

# ---------------------------------------------------------------------------
# Fake Stream client
# ---------------------------------------------------------------------------


class FakeStreamChannel:
    def __init__(self, client: FakeStreamClient, channel_type: str, channel_id: str) -> None:
        self.client = client
        self.cid = f"{channel_type}:{channel_id}"

    def query(self, messages: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
        options = dict(messages or {})
        self.client.calls.append(("channel.query", self.cid, options))
        if self.cid in self.client.fail_channels:
            raise RuntimeError(f"network failure while reading {self.cid}")

        history = self.client.messages.get(self.cid, [])
        if options.get("id_lt"):
            ids = [m["id"] for m in history]
            history = history[: ids.index(options["id_lt"])]
        limit = options.get("limit", 100)
        # Newest page first, ascending within the page
        page = history[-limit:] if limit else []
        return {"channel": {"cid": self.cid}, "messages": copy.deepcopy(page)}


class FakeStreamClient:
    """In-memory stand-in for ``stream_chat.StreamChat``."""

    def __init__(
        self,
        users: list[dict[str, Any]] | None = None,
        channels: list[dict[str, Any]] | None = None,
        messages: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self.users = sorted(users or [], key=lambda u: u["id"])
        self.channels = channels or []
        # cid -> messages in ascending created_at order
        self.messages = {
            cid: sorted(msgs, key=lambda m: m["created_at"])
            for cid, msgs in (messages or {}).items()
        }
        self.calls: list[tuple[Any, ...]] = []
        self.fail_channels: set[str] = set()

    def query_users(
        self, filter_conditions: dict[str, Any], sort: Any = None, **options: Any
    ) -> dict[str, Any]:
        self.calls.append(("query_users", filter_conditions, options))
        offset = options.get("offset", 0)
        limit = options.get("limit", 100)
        return {"users": copy.deepcopy(self.users[offset : offset + limit])}

    def query_channels(
        self, filter_conditions: dict[str, Any], sort: Any = None, **options: Any
    ) -> dict[str, Any]:
        self.calls.append(("query_channels", filter_conditions, options))
        entries = self.channels
        allowed = (filter_conditions.get("id") or {}).get("$in")
        if allowed is not None:
            entries = [e for e in entries if e["channel"]["id"] in allowed]
        offset = options.get("offset", 0)
        limit = options.get("limit", 10)
        return {"channels": copy.deepcopy(entries[offset : offset + limit])}

    def channel(self, channel_type: str, channel_id: str) -> FakeStreamChannel:
        return FakeStreamChannel(self, channel_type, channel_id)

    def calls_named(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]


# ---------------------------------------------------------------------------
# Fake bulk loader
# ---------------------------------------------------------------------------

# table -> unique keys (the first one is the primary key)
TABLE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "app_user": [("app_id", "id")],
    "channel": [("id",), ("app_id", "cid")],
    "channel_member": [("channel_id", "app_id", "user_id")],
    "message": [("id",)],
    "user_message": [("user_id", "message_id")],
    "reaction": [("id",)],
}


class FakeIntegrityError(Exception):
    """Duplicate key without a conflict clause."""


class InMemoryDatabase:
    """In-memory stand-in for the bulk loader (and its transaction sessions)."""

    def __init__(self, apps: dict[str, str] | None = None) -> None:
        self.apps = {APP_ID: "Test App"} if apps is None else apps
        self.tables: dict[str, list[dict[str, Any]]] = {t: [] for t in TABLE_KEYS}
        self.connected = False
        self.connect_calls = 0
        self.close_calls = 0
        self.insert_calls: list[tuple[str, list[str], int, str]] = []
        self.update_calls: list[str] = []
        self.queries: list[str] = []
        # table -> exception raised by the next insert into that table
        self.fail_next_insert: dict[str, BaseException] = {}

    # -- Database API ---------------------------------------------------------

    def connect(self) -> None:
        self.connect_calls += 1
        self.connected = True

    def close(self) -> None:
        self.close_calls += 1
        self.connected = False

    def transaction(self, fn: Callable[[Any], Any]) -> Any:
        snapshot = copy.deepcopy(self.tables)
        try:
            return fn(self)
        except BaseException:
            self.tables = snapshot
            raise

    def query(self, text: str, params: Any = None) -> list[dict[str, Any]]:
        self.queries.append(text)
        params = tuple(params or ())
        handler = self._handlers().get(text)
        if handler is None:
            raise AssertionError(f"Unexpected SQL: {text}")
        return handler(*params)

    def batch_insert(
        self, table: str, columns: list[str], rows: list[list[Any]], conflict_clause: str = ""
    ) -> None:
        if not rows:
            return
        if table in self.fail_next_insert:
            raise self.fail_next_insert.pop(table)
        self.insert_calls.append((table, list(columns), len(rows), conflict_clause))
        for row in rows:
            assert len(row) == len(columns), f"bad row width for {table}"
            record = dict(zip(columns, row))
            if self._conflicts(table, record):
                if "DO NOTHING" in conflict_clause:
                    continue
                raise FakeIntegrityError(f"duplicate key in {table}: {record}")
            self.tables[table].append(record)

    # -- Inspection helpers ---------------------------------------------------

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables[table]

    def counts(self) -> dict[str, int]:
        return {table: len(rows) for table, rows in self.tables.items()}

    @property
    def write_calls(self) -> int:
        return len(self.insert_calls) + len(self.update_calls)

    def find(self, table: str, **match: Any) -> list[dict[str, Any]]:
        return [
            row for row in self.tables[table] if all(row.get(k) == v for k, v in match.items())
        ]

    # -- Internals ------------------------------------------------------------

    def _conflicts(self, table: str, record: dict[str, Any]) -> bool:
        for key in TABLE_KEYS[table]:
            value = tuple(record.get(col) for col in key)
            if any(tuple(row.get(col) for col in key) == value for row in self.tables[table]):
                return True
        return False

    def _handlers(self) -> dict[str, Callable[..., list[dict[str, Any]]]]:
        return {
            APP_LOOKUP_SQL: self._app_lookup,
            UPDATE_MEMBER_COUNT_SQL: self._update_member_count,
            EXISTING_MESSAGES_SQL: lambda ids: self._existing("message", ids),
            MAX_SEQ_SQL: self._max_seq,
            CHANNEL_MEMBERS_SQL: self._channel_members,
            UPDATE_CHANNEL_STATS_SQL: self._update_channel_stats,
            EXISTING_REACTIONS_SQL: lambda ids: self._existing("reaction", ids),
            UPDATE_REACTION_COUNT_SQL: self._update_reaction_count,
        }

    def _app_lookup(self, app_id: str) -> list[dict[str, Any]]:
        if app_id not in self.apps:
            return []
        return [{"id": app_id, "name": self.apps[app_id]}]

    def _existing(self, table: str, ids: list[str]) -> list[dict[str, Any]]:
        wanted = set(ids)
        return [{"id": row["id"]} for row in self.tables[table] if row["id"] in wanted]

    def _max_seq(self, channel_id: str) -> list[dict[str, Any]]:
        seqs = [row["seq"] for row in self.find("message", channel_id=channel_id)]
        return [{"max_seq": max(seqs, default=0)}]

    def _channel_members(self, channel_id: str, app_id: str) -> list[dict[str, Any]]:
        return [
            {"user_id": row["user_id"]}
            for row in self.find("channel_member", channel_id=channel_id, app_id=app_id)
        ]

    def _update_member_count(self, count_channel: str, channel_id: str) -> list[dict[str, Any]]:
        self.update_calls.append("member_count")
        count = len(self.find("channel_member", channel_id=count_channel))
        for row in self.find("channel", id=channel_id):
            row["member_count"] = count
        return []

    def _update_channel_stats(
        self, count_channel: str, max_channel: str, channel_id: str
    ) -> list[dict[str, Any]]:
        self.update_calls.append("channel_stats")
        messages = self.find("message", channel_id=count_channel)
        for row in self.find("channel", id=channel_id):
            row["message_count"] = len(messages)
            row["last_message_at"] = max(
                (m["created_at"] for m in self.find("message", channel_id=max_channel)),
                default=None,
            )
        return []

    def _update_reaction_count(self, count_message: str, message_id: str) -> list[dict[str, Any]]:
        self.update_calls.append("reaction_count")
        count = len(self.find("reaction", message_id=count_message))
        for row in self.find("message", id=message_id):
            row["reaction_count"] = count
        return []


# ---------------------------------------------------------------------------
# Sample Stream data
# ---------------------------------------------------------------------------


def _ts(minute: int) -> str:
    return f"2024-03-01T10:{minute:02d}:00.123456789Z"


def stream_user(user_id: str, **extra: Any) -> dict[str, Any]:
    data = {"id": user_id, "role": "user", "created_at": _ts(0), "updated_at": _ts(0)}
    data.update(extra)
    return data


def stream_channel(
    channel_type: str, channel_id: str, member_ids: list[str], **extra: Any
) -> dict[str, Any]:
    channel = {
        "id": channel_id,
        "type": channel_type,
        "cid": f"{channel_type}:{channel_id}",
        "created_at": _ts(1),
        "created_by": {"id": member_ids[0]} if member_ids else None,
    }
    channel.update(extra)
    return {
        "channel": channel,
        "members": [
            {"user_id": uid, "user": {"id": uid}, "created_at": _ts(1)} for uid in member_ids
        ],
    }


def stream_message(message_id: str, user_id: str | None, minute: int, **extra: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": message_id,
        "text": f"message {message_id}",
        "type": "regular",
        "created_at": _ts(minute),
        "updated_at": _ts(minute),
        "attachments": [],
        "latest_reactions": [],
        "reaction_counts": {},
        "reply_count": 0,
    }
    if user_id is not None:
        data["user"] = {"id": user_id}
    data.update(extra)
    return data


def thumbs_up_message(message_id: str, author: str, minute: int) -> dict[str, Any]:
    """A message with two detailed 👍 reactions but an aggregate count of five."""
    return stream_message(
        message_id,
        author,
        minute,
        latest_reactions=[
            {"type": "👍", "user_id": "alice", "created_at": _ts(minute + 1)},
            {"type": "👍", "user": {"id": "bob"}, "created_at": _ts(minute + 2)},
        ],
        reaction_counts={"👍": 5},
        reaction_groups={"👍": {"count": 5, "sum_scores": 5}},
    )


@pytest.fixture()
def sample_stream_data() -> dict[str, Any]:
    """Users, channels and message histories for a small Stream app."""
    users = [
        stream_user("alice", name="Alice", image="https://img/alice.png", team="blue"),
        stream_user("bob", name="Bob"),
        stream_user("carol"),
    ]
    channels = [
        stream_channel("messaging", "general", ["alice", "bob"], name="General"),
        stream_channel("team", "eng", ["alice", "carol"], name="Engineering"),
        stream_channel("gaming", "lobby", ["bob"]),
    ]
    messages = {
        "messaging:general": [
            stream_message("g1", "alice", 10),
            stream_message("g2", "bob", 11),
            thumbs_up_message("g3", "alice", 12),
            stream_message("g4", "bob", 15, quoted_message_id="g2"),
            stream_message("g5", "alice", 16),
        ],
        "team:eng": [
            stream_message("e1", "carol", 20),
            # Author deleted upstream: no user mapping exists
            stream_message("e2", "ghost", 21),
        ],
    }
    return {"users": users, "channels": channels, "messages": messages}


@pytest.fixture()
def fake_stream_client(sample_stream_data: dict[str, Any]) -> FakeStreamClient:
    return FakeStreamClient(**copy.deepcopy(sample_stream_data))


@pytest.fixture()
def in_memory_db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture()
def make_migrator(tmp_path):
    """Factory building a ChatSDKMigrator wired to the in-memory fakes."""

    def _make(
        client: FakeStreamClient,
        db: InMemoryDatabase,
        *,
        checkpoint_dir=None,
        dry_run: bool = False,
        resume: bool = False,
        channels: list[str] | None = None,
        user_batch_size: int = 2,
        channel_batch_size: int = 2,
        message_batch_size: int = 2,
    ) -> ChatSDKMigrator:
        config = MigrationConfig(
            user_batch_size=user_batch_size,
            channel_batch_size=channel_batch_size,
            message_batch_size=message_batch_size,
            channels=list(channels or []),
        )
        ctx = MigrationContext(
            app_id=APP_ID,
            checkpoint_dir=checkpoint_dir or tmp_path / "checkpoint",
            dry_run=dry_run,
            resume=resume,
            config=config,
        )
        return ChatSDKMigrator(ctx, StreamAdapter(client), db)

    return _make


@pytest.fixture()
def make_stream_client():
    """The FakeStreamClient class, for tests that need custom histories."""
    return FakeStreamClient


@pytest.fixture()
def stream_records():
    """Builders for raw Stream API payloads."""
    return SimpleNamespace(
        user=stream_user,
        channel=stream_channel,
        message=stream_message,
        thumbs_up_message=thumbs_up_message,
        ts=_ts,
    )


@pytest.fixture()
def make_database():
    """The InMemoryDatabase class, for tests that compare two stores."""
    return InMemoryDatabase
