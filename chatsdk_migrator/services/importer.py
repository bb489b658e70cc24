"""Shared plumbing for the entity importers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from chatsdk_migrator.constants import TARGET_ID_NAMESPACE

if TYPE_CHECKING:
    from chatsdk_migrator.core.id_mapping import IdMappingCache
    from chatsdk_migrator.core.progress import ProgressTracker
    from chatsdk_migrator.services.database import Database


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_target_id(app_id: str, kind: str, *parts: str) -> str:
    """Deterministic UUID for a source entity within one target app.

    Replaying a batch therefore produces the same primary keys, which the
    ``DO NOTHING`` conflict clauses turn into no-ops.
    """
    name = ":".join((app_id, kind, *parts))
    return str(uuid.uuid5(TARGET_ID_NAMESPACE, name))


class Importer:
    """Base class: transform a batch of source records and load it."""

    def __init__(
        self,
        db: Database,
        app_id: str,
        id_mapping: IdMappingCache,
        progress: ProgressTracker,
    ) -> None:
        self.db = db
        self.app_id = app_id
        self.id_mapping = id_mapping
        self.progress = progress
