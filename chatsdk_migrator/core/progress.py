"""
Progress tracking for a migration run.

The tracker owns the per-entity counters persisted as ``progress.json`` in
the checkpoint directory. Presentation (progress bars) is kept out of the
core: the CLI subscribes a :class:`ProgressObserver` and receives
``on_batch_imported`` events.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from chatsdk_migrator.constants import (
    KIND_CHANNELS,
    KIND_MESSAGES,
    KIND_REACTIONS,
    KIND_USERS,
    PROGRESS_FILE,
)
from chatsdk_migrator.core.checkpoint import read_json, write_json_atomic
from chatsdk_migrator.exceptions import CheckpointError
from chatsdk_migrator.types import parse_timestamp
from chatsdk_migrator.utils.logging import log_with_context


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# progress.json key <-> ProgressRecord attribute
_JSON_KEYS = {
    "users_imported": "usersImported",
    "channels_imported": "channelsImported",
    "messages_imported": "messagesImported",
    "reactions_imported": "reactionsImported",
    "started_at": "startedAt",
    "last_updated_at": "lastUpdatedAt",
    "completed": "completed",
}

# entity kind -> counter attribute
COUNTER_FIELDS = {
    KIND_USERS: "users_imported",
    KIND_CHANNELS: "channels_imported",
    KIND_MESSAGES: "messages_imported",
    KIND_REACTIONS: "reactions_imported",
}


@dataclass
class ProgressRecord:
    """Serializable snapshot of migration progress.

    Counters are a lower bound on rows in the target store: a replayed
    batch may be counted again even though its inserts were no-ops.
    """

    users_imported: int = 0
    channels_imported: int = 0
    messages_imported: int = 0
    reactions_imported: int = 0
    started_at: str = field(default_factory=_now_iso)
    last_updated_at: str = field(default_factory=_now_iso)
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {_JSON_KEYS[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProgressRecord:
        kwargs: dict[str, Any] = {}
        for attr, key in _JSON_KEYS.items():
            if key not in data:
                continue
            value = data[key]
            if attr in COUNTER_FIELDS.values():
                # bool is an int subclass
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ValueError(f"'{key}' must be a non-negative integer, got {value!r}")
            elif attr == "completed":
                if not isinstance(value, bool):
                    raise ValueError(f"'{key}' must be a boolean, got {value!r}")
            elif not isinstance(value, str):
                raise ValueError(f"'{key}' must be a timestamp string, got {value!r}")
            kwargs[attr] = value
        return cls(**kwargs)


class ProgressObserver:
    """Receives progress events from the tracker. All hooks are no-ops."""

    def on_counter_created(self, name: str, label: str) -> None:
        pass

    def on_batch_imported(self, kind: str, count: int) -> None:
        pass

    def on_stop(self) -> None:
        pass


class ProgressTracker:
    """Accumulates counters and persists them to ``progress.json``."""

    def __init__(self, cache_dir: Path | str) -> None:
        self.cache_dir = Path(cache_dir)
        self._progress = ProgressRecord()
        self._observers: list[ProgressObserver] = []

    @property
    def path(self) -> Path:
        return self.cache_dir / PROGRESS_FILE

    # -- Observers ------------------------------------------------------------

    def subscribe(self, observer: ProgressObserver) -> None:
        self._observers.append(observer)

    def create_counter(self, name: str, label: str | None = None) -> None:
        """Announce a counter to observers (cosmetic)."""
        for observer in self._observers:
            observer.on_counter_created(name, label or name.capitalize())

    def batch_imported(self, kind: str, count: int) -> None:
        for observer in self._observers:
            observer.on_batch_imported(kind, count)

    def stop(self) -> None:
        for observer in self._observers:
            observer.on_stop()

    # -- Counters -------------------------------------------------------------

    def update_progress(self, **updates: Any) -> None:
        """Shallow-merge ``updates`` into the record and stamp ``last_updated_at``.

        Counter values are new totals, not deltas.
        """
        unknown = set(updates) - {f.name for f in fields(ProgressRecord)}
        if unknown:
            raise ValueError(f"Unknown progress field(s): {', '.join(sorted(unknown))}")
        self._progress = replace(
            self._progress, **{**updates, "last_updated_at": _now_iso()}
        )

    def get_progress(self) -> ProgressRecord:
        return self._progress

    def record_batch(self, kind: str, count: int) -> None:
        """Add ``count`` to the counter for ``kind`` and notify observers."""
        attr = COUNTER_FIELDS[kind]
        current: int = getattr(self._progress, attr)
        self.update_progress(**{attr: current + count})
        self.batch_imported(kind, count)

    def elapsed(self) -> timedelta:
        started = parse_timestamp(self._progress.started_at)
        if started is None:
            return timedelta(0)
        return datetime.now(timezone.utc) - started

    # -- Persistence ----------------------------------------------------------

    def save_progress(self) -> None:
        write_json_atomic(self.path, self._progress.to_dict())

    def load_progress(self) -> ProgressRecord | None:
        """Load ``progress.json``; None if absent, CheckpointError if malformed."""
        raw = read_json(self.path)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise CheckpointError(f"Progress file {self.path} has invalid format")
        try:
            self._progress = ProgressRecord.from_dict(raw)
        except (TypeError, ValueError) as e:
            raise CheckpointError(f"Progress file {self.path} is malformed: {e}") from e
        log_with_context(
            logging.INFO,
            f"Loaded progress: {self._progress.users_imported} users, "
            f"{self._progress.channels_imported} channels, "
            f"{self._progress.messages_imported} messages, "
            f"{self._progress.reactions_imported} reactions",
        )
        return self._progress
