"""User import stage: Stream users -> ``app_user`` rows."""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

from chatsdk_migrator.constants import KIND_USERS, USER_CONFLICT, USER_TABLE
from chatsdk_migrator.services.importer import Importer, utcnow
from chatsdk_migrator.types import SourceUser
from chatsdk_migrator.utils.logging import log_with_context

USER_COLUMNS = [
    "app_id",
    "id",
    "name",
    "image_url",
    "custom_data",
    "last_active_at",
    "created_at",
    "updated_at",
]


class UserImporter(Importer):
    """Imports users under their Stream id (no new identifiers are minted)."""

    def build_row(self, user: SourceUser) -> list[Any]:
        now = utcnow()
        return [
            self.app_id,
            user.id,
            user.name or user.id,
            user.image,
            json.dumps(user.custom_data, default=str),
            user.last_active,
            user.created_at or now,
            now,
        ]

    def import_batch(self, users: Sequence[SourceUser], dry_run: bool = False) -> int:
        """Import one batch of users and return how many rows were built."""
        if not users:
            return 0

        rows = []
        for user in users:
            rows.append(self.build_row(user))
            # Identity mapping keeps every importer on the same lookup contract
            self.id_mapping.add_user(user.id, user.id)

        if not dry_run:
            self.db.batch_insert(USER_TABLE, USER_COLUMNS, rows, USER_CONFLICT)

        log_with_context(
            logging.DEBUG,
            f"{'[DRY RUN] ' if dry_run else ''}Prepared {len(rows)} user row(s)",
        )
        self.progress.record_batch(KIND_USERS, len(rows))
        return len(rows)
