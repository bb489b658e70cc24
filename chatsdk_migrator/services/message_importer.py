"""Message import stage.

Messages of one channel arrive newest page first. Each batch is sorted
oldest first and numbered with a per-channel sequence that continues from
the highest ``seq`` already stored, so the series stays strictly increasing
and gap-free across batches.

Every message is also fanned out to one ``user_message`` row per channel
member (read for the author, unread for everyone else). This expansion is
members x messages and dominates the cost of a migration.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from chatsdk_migrator.constants import (
    DO_NOTHING_CONFLICT,
    FLAG_READ,
    FLAG_UNREAD,
    KIND_MESSAGES,
    MESSAGE_STATUS_SENT,
    MESSAGE_TABLE,
    USER_MESSAGE_TABLE,
)
from chatsdk_migrator.services.database import Session
from chatsdk_migrator.services.importer import Importer, derive_target_id, utcnow
from chatsdk_migrator.types import SourceMessage
from chatsdk_migrator.utils.logging import log_with_context

MESSAGE_COLUMNS = [
    "id",
    "channel_id",
    "app_id",
    "user_id",
    "seq",
    "text",
    "attachments",
    "parent_id",
    "reply_to_id",
    "reaction_count",
    "reply_count",
    "pinned",
    "pinned_at",
    "pinned_by",
    "status",
    "created_at",
    "updated_at",
    "deleted_at",
]

USER_MESSAGE_COLUMNS = ["user_id", "app_id", "message_id", "flags"]

MAX_SEQ_SQL = "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM message WHERE channel_id = %s"

EXISTING_MESSAGES_SQL = "SELECT id FROM message WHERE id = ANY(%s::uuid[])"

CHANNEL_MEMBERS_SQL = "SELECT user_id FROM channel_member WHERE channel_id = %s AND app_id = %s"

UPDATE_CHANNEL_STATS_SQL = (
    "UPDATE channel SET "
    "message_count = (SELECT COUNT(*) FROM message WHERE channel_id = %s), "
    "last_message_at = (SELECT MAX(created_at) FROM message WHERE channel_id = %s) "
    "WHERE id = %s"
)


@dataclass(frozen=True)
class PreparedMessage:
    """A source message with its resolved target identifiers."""

    source: SourceMessage
    target_id: str
    user_id: str | None
    parent_id: str | None
    reply_to_id: str | None


class MessageImporter(Importer):
    """Imports the messages of one channel batch by batch."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # Dry runs never read the store, so the running sequence lives here
        self._dry_run_seq: dict[str, int] = {}

    def target_id_for(self, message: SourceMessage) -> str:
        existing = self.id_mapping.get_message(message.id)
        if existing is not None:
            return existing
        return derive_target_id(self.app_id, "message", message.id)

    def prepare(self, messages: Sequence[SourceMessage]) -> list[PreparedMessage]:
        """Sort oldest first, mint target ids and resolve references."""
        prepared = []
        for message in sorted(messages, key=lambda m: m.sort_key):
            target_id = self.target_id_for(message)
            self.id_mapping.add_message(message.id, target_id)
            prepared.append(
                PreparedMessage(
                    source=message,
                    target_id=target_id,
                    user_id=self.id_mapping.resolve_user(message.user_id),
                    parent_id=self._resolve_message(message.parent_id),
                    reply_to_id=self._resolve_message(message.quoted_message_id),
                )
            )
        return prepared

    def _resolve_message(self, source_id: str | None) -> str | None:
        if not source_id:
            return None
        return self.id_mapping.get_message(source_id)

    def build_row(self, prepared: PreparedMessage, channel_id: str, seq: int) -> list[Any]:
        message = prepared.source
        now = utcnow()
        return [
            prepared.target_id,
            channel_id,
            self.app_id,
            prepared.user_id,
            seq,
            message.text,
            json.dumps(message.attachments, default=str),
            prepared.parent_id,
            prepared.reply_to_id,
            sum(message.reaction_counts.values()),
            message.reply_count,
            message.pinned,
            message.pinned_at,
            self.id_mapping.resolve_user(message.pinned_by_id),
            MESSAGE_STATUS_SENT,
            message.created_at or now,
            message.updated_at or message.created_at or now,
            message.deleted_at,
        ]

    def import_batch(
        self, cid: str, messages: Sequence[SourceMessage], dry_run: bool = False
    ) -> int:
        """Import one page of ``cid``'s messages; return how many were new.

        A channel without a target mapping is skipped with a warning.
        """
        channel_id = self.id_mapping.get_channel(cid)
        if channel_id is None:
            log_with_context(
                logging.WARNING,
                f"No target mapping for channel {cid}, skipping {len(messages)} message(s)",
                channel=cid,
            )
            return 0
        if not messages:
            return 0

        prepared = self.prepare(messages)

        if dry_run:
            start = self._dry_run_seq.get(channel_id, 0)
            rows = [
                self.build_row(p, channel_id, start + offset)
                for offset, p in enumerate(prepared, start=1)
            ]
            self._dry_run_seq[channel_id] = start + len(rows)
            imported = len(rows)
        else:
            imported = self.db.transaction(
                lambda session: self._write(session, channel_id, prepared)
            )

        log_with_context(
            logging.DEBUG,
            f"{'[DRY RUN] ' if dry_run else ''}Imported {imported} message(s)",
            channel=cid,
        )
        self.progress.record_batch(KIND_MESSAGES, imported)
        return imported

    def _write(self, session: Session, channel_id: str, prepared: list[PreparedMessage]) -> int:
        existing = {
            str(row["id"])
            for row in session.query(
                EXISTING_MESSAGES_SQL, ([p.target_id for p in prepared],)
            )
        }
        fresh = [p for p in prepared if p.target_id not in existing]
        if not fresh:
            return 0

        max_seq = session.query(MAX_SEQ_SQL, (channel_id,))[0]["max_seq"]
        rows = [
            self.build_row(p, channel_id, max_seq + offset)
            for offset, p in enumerate(fresh, start=1)
        ]
        session.batch_insert(MESSAGE_TABLE, MESSAGE_COLUMNS, rows, DO_NOTHING_CONFLICT)

        members = [
            row["user_id"]
            for row in session.query(CHANNEL_MEMBERS_SQL, (channel_id, self.app_id))
        ]
        fan_out = [
            [
                member,
                self.app_id,
                p.target_id,
                FLAG_READ if member == p.user_id else FLAG_UNREAD,
            ]
            for p in fresh
            for member in members
        ]
        session.batch_insert(
            USER_MESSAGE_TABLE, USER_MESSAGE_COLUMNS, fan_out, DO_NOTHING_CONFLICT
        )

        session.query(UPDATE_CHANNEL_STATS_SQL, (channel_id, channel_id, channel_id))
        return len(rows)
