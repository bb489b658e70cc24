"""Identifier mapping cache: Stream ids to ChatSDK ids, persisted per checkpoint."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator

from chatsdk_migrator.constants import ID_MAPPING_FILE
from chatsdk_migrator.core.checkpoint import read_json, write_json_atomic
from chatsdk_migrator.exceptions import CheckpointError, MappingConflictError
from chatsdk_migrator.utils.logging import log_with_context

_KINDS = ("users", "channels", "messages")


class IdMappingCache:
    """In-memory source-id -> target-id maps for users, channels and messages.

    Entries are immutable for the lifetime of a run: adding the same pair
    twice is a no-op, adding a different target for a mapped source raises
    :class:`MappingConflictError`.
    """

    def __init__(self, cache_dir: Path | str) -> None:
        self.cache_dir = Path(cache_dir)
        self._maps: dict[str, dict[str, str]] = {kind: {} for kind in _KINDS}

    @property
    def path(self) -> Path:
        return self.cache_dir / ID_MAPPING_FILE

    # -- Insert ---------------------------------------------------------------

    def _add(self, kind: str, source_id: str, target_id: str) -> None:
        mapping = self._maps[kind]
        existing = mapping.get(source_id)
        if existing is None:
            mapping[source_id] = target_id
        elif existing != target_id:
            raise MappingConflictError(
                f"{kind[:-1]} {source_id!r} is already mapped to {existing!r}, "
                f"refusing to remap to {target_id!r}"
            )

    def add_user(self, source_id: str, target_id: str) -> None:
        self._add("users", source_id, target_id)

    def add_channel(self, source_cid: str, target_id: str) -> None:
        self._add("channels", source_cid, target_id)

    def add_message(self, source_id: str, target_id: str) -> None:
        self._add("messages", source_id, target_id)

    # -- Lookup ---------------------------------------------------------------

    def get_user(self, source_id: str) -> str | None:
        return self._maps["users"].get(source_id)

    def get_channel(self, source_cid: str) -> str | None:
        return self._maps["channels"].get(source_cid)

    def get_message(self, source_id: str) -> str | None:
        return self._maps["messages"].get(source_id)

    def resolve_user(self, source_id: str | None) -> str | None:
        """Return the mapped user id, falling back to the raw source id.

        Orphaned references (e.g. authors deleted upstream) are imported
        under their source id rather than failing the batch.
        """
        if not source_id:
            return None
        target = self.get_user(source_id)
        if target is None:
            log_with_context(
                logging.DEBUG, f"No user mapping for {source_id}, using source id"
            )
            return source_id
        return target

    def channels(self) -> Iterator[tuple[str, str]]:
        """Iterate ``(cid, target_id)`` pairs in insertion order."""
        return iter(list(self._maps["channels"].items()))

    # -- Persistence ----------------------------------------------------------

    def save(self) -> None:
        """Write every mapping as a flat list of pairs per kind."""
        data = {kind: [[s, t] for s, t in self._maps[kind].items()] for kind in _KINDS}
        write_json_atomic(self.path, data)

    def load(self) -> None:
        """Replace the in-memory maps with the checkpoint contents.

        A missing file leaves the cache empty so first and resumed runs look
        the same at this layer.
        """
        raw = read_json(self.path)
        if raw is None:
            log_with_context(logging.DEBUG, f"No id mapping at {self.path}, starting empty")
            return
        if not isinstance(raw, dict):
            raise CheckpointError(f"Id mapping {self.path} has invalid format")

        loaded: dict[str, dict[str, str]] = {}
        for kind in _KINDS:
            loaded[kind] = _pairs_to_dict(raw.get(kind, []), kind, self.path)
        self._maps = loaded

        stats = self.stats()
        log_with_context(
            logging.INFO,
            f"Loaded id mapping: {stats['users']} users, {stats['channels']} channels, "
            f"{stats['messages']} messages",
        )

    def stats(self) -> dict[str, int]:
        return {kind: len(self._maps[kind]) for kind in _KINDS}


def _pairs_to_dict(pairs: Any, kind: str, path: Path) -> dict[str, str]:
    if not isinstance(pairs, list):
        raise CheckpointError(f"Id mapping {path}: '{kind}' must be a list of pairs")
    result: dict[str, str] = {}
    for pair in pairs:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise CheckpointError(f"Id mapping {path}: malformed {kind} entry {pair!r}")
        result[str(pair[0])] = str(pair[1])
    return result
