"""Channel import stage: Stream channels and their members."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from chatsdk_migrator.constants import (
    CHANNEL_CONFLICT,
    CHANNEL_MEMBER_CONFLICT,
    CHANNEL_MEMBER_TABLE,
    CHANNEL_TABLE,
    CHANNEL_TYPE_MAP,
    DEFAULT_MEMBER_ROLE,
    FALLBACK_CHANNEL_TYPE,
    KIND_CHANNELS,
)
from chatsdk_migrator.services.database import Session
from chatsdk_migrator.services.importer import Importer, derive_target_id, utcnow
from chatsdk_migrator.types import SourceChannel
from chatsdk_migrator.utils.logging import log_with_context

CHANNEL_COLUMNS = [
    "id",
    "app_id",
    "cid",
    "type",
    "name",
    "image_url",
    "description",
    "created_by",
    "member_count",
    "message_count",
    "last_message_at",
    "created_at",
    "updated_at",
]

MEMBER_COLUMNS = ["channel_id", "app_id", "user_id", "role", "joined_at"]

UPDATE_MEMBER_COUNT_SQL = (
    "UPDATE channel SET member_count = "
    "(SELECT COUNT(*) FROM channel_member WHERE channel_id = %s) "
    "WHERE id = %s"
)


def translate_channel_type(source_type: str) -> str:
    """Map a Stream channel type onto a ChatSDK channel type.

    ``messaging`` becomes ``direct``, ``team`` stays ``team`` and every other
    type becomes ``group``.
    """
    return CHANNEL_TYPE_MAP.get(source_type, FALLBACK_CHANNEL_TYPE)


class ChannelImporter(Importer):
    """Imports channels with fresh target ids plus their membership rows."""

    def target_id_for(self, channel: SourceChannel) -> str:
        existing = self.id_mapping.get_channel(channel.cid)
        if existing is not None:
            return existing
        return derive_target_id(self.app_id, "channel", channel.cid)

    def build_rows(
        self, channel: SourceChannel, channel_id: str
    ) -> tuple[list[Any], list[list[Any]]]:
        now = utcnow()
        channel_row = [
            channel_id,
            self.app_id,
            channel.cid,
            translate_channel_type(channel.type),
            channel.name,
            channel.image,
            channel.description,
            channel.created_by_id,
            0,  # member_count, recomputed after the member insert
            0,  # message_count, recomputed by the message stage
            channel.last_message_at,
            channel.created_at or now,
            now,
        ]
        member_rows = [
            [
                channel_id,
                self.app_id,
                self.id_mapping.resolve_user(member.user_id),
                member.role or DEFAULT_MEMBER_ROLE,
                member.created_at or now,
            ]
            for member in channel.members
        ]
        return channel_row, member_rows

    def import_batch(self, channels: Sequence[SourceChannel], dry_run: bool = False) -> int:
        """Import one batch of channels and return how many rows were built."""
        if not channels:
            return 0

        channel_rows: list[list[Any]] = []
        member_rows: list[list[Any]] = []
        for channel in channels:
            channel_id = self.target_id_for(channel)
            self.id_mapping.add_channel(channel.cid, channel_id)
            channel_row, members = self.build_rows(channel, channel_id)
            channel_rows.append(channel_row)
            member_rows.extend(members)

        if not dry_run:
            self.db.transaction(
                lambda session: self._write(session, channel_rows, member_rows)
            )

        log_with_context(
            logging.DEBUG,
            f"{'[DRY RUN] ' if dry_run else ''}Prepared {len(channel_rows)} channel row(s) "
            f"and {len(member_rows)} member row(s)",
        )
        self.progress.record_batch(KIND_CHANNELS, len(channel_rows))
        return len(channel_rows)

    def _write(
        self,
        session: Session,
        channel_rows: list[list[Any]],
        member_rows: list[list[Any]],
    ) -> None:
        session.batch_insert(CHANNEL_TABLE, CHANNEL_COLUMNS, channel_rows, CHANNEL_CONFLICT)
        if not member_rows:
            return
        session.batch_insert(
            CHANNEL_MEMBER_TABLE, MEMBER_COLUMNS, member_rows, CHANNEL_MEMBER_CONFLICT
        )
        # The channel rows were built before membership was final
        for channel_row in channel_rows:
            channel_id = channel_row[0]
            session.query(UPDATE_MEMBER_COUNT_SQL, (channel_id, channel_id))
