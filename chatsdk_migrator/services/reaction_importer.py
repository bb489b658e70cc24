"""Reaction import stage.

Stream returns at most a handful of detailed ``latest_reactions`` per
message while ``reaction_groups`` carries the true per-emoji totals. When a
total exceeds the detailed entries, placeholder reactions attributed to the
message author are synthesized until the counts match. This keeps reaction
counts exact; the placeholders' authorship is a heuristic.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Sequence

from chatsdk_migrator.constants import (
    DEFAULT_REACTION_TYPE,
    DO_NOTHING_CONFLICT,
    KIND_REACTIONS,
    REACTION_TABLE,
    UNKNOWN_USER_ID,
)
from chatsdk_migrator.services.database import Session
from chatsdk_migrator.services.importer import Importer, derive_target_id, utcnow
from chatsdk_migrator.types import SourceMessage
from chatsdk_migrator.utils.logging import log_with_context

REACTION_COLUMNS = [
    "id",
    "message_id",
    "channel_id",
    "app_id",
    "user_id",
    "emoji",
    "created_at",
]

EXISTING_REACTIONS_SQL = "SELECT id FROM reaction WHERE id = ANY(%s::uuid[])"

UPDATE_REACTION_COUNT_SQL = (
    "UPDATE message SET reaction_count = "
    "(SELECT COUNT(*) FROM reaction WHERE message_id = %s) "
    "WHERE id = %s"
)


def placeholder_counts(message: SourceMessage) -> dict[str, int]:
    """Number of placeholders needed per emoji to reach the group totals."""
    totals = message.reaction_groups or message.reaction_counts
    detailed = Counter(r.type or DEFAULT_REACTION_TYPE for r in message.latest_reactions)
    return {
        emoji: total - detailed[emoji]
        for emoji, total in totals.items()
        if total > detailed[emoji]
    }


class ReactionImporter(Importer):
    """Imports detailed reactions plus reconciled placeholders."""

    def build_rows(
        self, message: SourceMessage, message_id: str, channel_id: str
    ) -> list[list[Any]]:
        now = utcnow()
        author = self.id_mapping.resolve_user(message.user_id) or UNKNOWN_USER_ID
        ordinals: Counter[tuple[str, str]] = Counter()
        rows = []

        def add(emoji: str, user_id: str, created_at: Any) -> None:
            ordinal = ordinals[(emoji, user_id)]
            ordinals[(emoji, user_id)] += 1
            reaction_id = derive_target_id(
                self.app_id, "reaction", message_id, emoji, user_id, str(ordinal)
            )
            rows.append(
                [reaction_id, message_id, channel_id, self.app_id, user_id, emoji, created_at]
            )

        for reaction in message.latest_reactions:
            add(
                reaction.type or DEFAULT_REACTION_TYPE,
                self.id_mapping.resolve_user(reaction.user_id) or author,
                reaction.created_at or message.created_at or now,
            )

        for emoji, missing in placeholder_counts(message).items():
            for _ in range(missing):
                add(emoji, author, message.created_at or now)

        return rows

    def import_batch(
        self, cid: str, messages: Sequence[SourceMessage], dry_run: bool = False
    ) -> int:
        """Import reactions of already-imported messages; return new row count."""
        channel_id = self.id_mapping.get_channel(cid)
        if channel_id is None:
            log_with_context(
                logging.WARNING,
                f"No target mapping for channel {cid}, skipping reactions",
                channel=cid,
            )
            return 0

        rows: list[list[Any]] = []
        touched: list[str] = []
        for message in messages:
            if not message.latest_reactions and not (
                message.reaction_groups or message.reaction_counts
            ):
                continue
            message_id = self.id_mapping.get_message(message.id)
            if message_id is None:
                log_with_context(
                    logging.WARNING,
                    f"No target mapping for message {message.id}, skipping its reactions",
                    channel=cid,
                )
                continue
            message_rows = self.build_rows(message, message_id, channel_id)
            if message_rows:
                rows.extend(message_rows)
                touched.append(message_id)

        if not rows:
            return 0

        if dry_run:
            imported = len(rows)
        else:
            imported = self.db.transaction(lambda session: self._write(session, rows, touched))

        log_with_context(
            logging.DEBUG,
            f"{'[DRY RUN] ' if dry_run else ''}Imported {imported} reaction(s) "
            f"on {len(touched)} message(s)",
            channel=cid,
        )
        self.progress.record_batch(KIND_REACTIONS, imported)
        return imported

    def _write(self, session: Session, rows: list[list[Any]], touched: list[str]) -> int:
        existing = {
            str(row["id"])
            for row in session.query(EXISTING_REACTIONS_SQL, ([r[0] for r in rows],))
        }
        fresh = [r for r in rows if r[0] not in existing]
        session.batch_insert(REACTION_TABLE, REACTION_COLUMNS, fresh, DO_NOTHING_CONFLICT)
        for message_id in touched:
            session.query(UPDATE_REACTION_COUNT_SQL, (message_id, message_id))
        return len(fresh)
