"""
Main migrator class for the Stream Chat to ChatSDK migration tool
"""

from __future__ import annotations

import logging
from typing import Any

from chatsdk_migrator.constants import KIND_CHANNELS, KIND_MESSAGES, KIND_REACTIONS, KIND_USERS
from chatsdk_migrator.core.context import MigrationContext
from chatsdk_migrator.core.id_mapping import IdMappingCache
from chatsdk_migrator.core.progress import ProgressRecord, ProgressTracker
from chatsdk_migrator.core.state import MigrationPhase, MigrationState
from chatsdk_migrator.exceptions import TargetAppNotFoundError
from chatsdk_migrator.services.channel_importer import ChannelImporter
from chatsdk_migrator.services.database import Database
from chatsdk_migrator.services.message_importer import MessageImporter
from chatsdk_migrator.services.reaction_importer import ReactionImporter
from chatsdk_migrator.services.stream_adapter import StreamAdapter
from chatsdk_migrator.services.user_importer import UserImporter
from chatsdk_migrator.utils.logging import log_with_context

APP_LOOKUP_SQL = "SELECT id, name FROM app WHERE id = %s"

_PHASES = [
    MigrationPhase.IMPORTING_USERS,
    MigrationPhase.IMPORTING_CHANNELS,
    MigrationPhase.IMPORTING_MESSAGES_AND_REACTIONS,
]


def resume_phase(progress: ProgressRecord | None) -> MigrationPhase:
    """Phase a resumed run re-enters, inferred from the loaded counters.

    Phases are not resumable mid-way: the phase in progress is replayed from
    its start and idempotent inserts absorb the rows already written.
    """
    if progress is None:
        return MigrationPhase.IMPORTING_USERS
    if progress.completed:
        return MigrationPhase.COMPLETED
    if progress.messages_imported > 0 or progress.reactions_imported > 0:
        return MigrationPhase.IMPORTING_MESSAGES_AND_REACTIONS
    if progress.channels_imported > 0:
        return MigrationPhase.IMPORTING_CHANNELS
    return MigrationPhase.IMPORTING_USERS


class ChatSDKMigrator:
    """Runs the users -> channels -> messages+reactions pipeline for one app."""

    def __init__(
        self,
        ctx: MigrationContext,
        adapter: StreamAdapter,
        db: Database,
        id_mapping: IdMappingCache | None = None,
        progress: ProgressTracker | None = None,
    ) -> None:
        self.ctx = ctx
        self.adapter = adapter
        self.db = db
        self.id_mapping = id_mapping or IdMappingCache(ctx.checkpoint_dir)
        self.progress = progress or ProgressTracker(ctx.checkpoint_dir)
        self.state = MigrationState()
        # False while a resumed checkpoint has not been loaded into memory yet
        self._checkpoint_ready = False

        importer_args: tuple[Any, ...] = (db, ctx.app_id, self.id_mapping, self.progress)
        self.users = UserImporter(*importer_args)
        self.channels = ChannelImporter(*importer_args)
        self.messages = MessageImporter(*importer_args)
        self.reactions = ReactionImporter(*importer_args)

    # -- Checkpoint -----------------------------------------------------------

    def save_checkpoint(self) -> None:
        self.id_mapping.save()
        self.progress.save_progress()

    def _load_checkpoint(self) -> MigrationPhase:
        self.id_mapping.load()
        loaded = self.progress.load_progress()
        phase = resume_phase(loaded)
        self._checkpoint_ready = True
        log_with_context(
            logging.INFO,
            f"Resuming from checkpoint {self.ctx.checkpoint_dir} at phase {phase.value}",
        )
        return phase

    # -- Entry point ----------------------------------------------------------

    def migrate(self) -> MigrationState:
        """Run every phase, checkpointing after each batch.

        Any exception moves the run to FAILED, flushes the checkpoint one
        last time and is re-raised. A resumed checkpoint that was never
        loaded (connection failure, missing app, malformed file) is left as
        it is on disk.
        """
        prefix = self.ctx.log_prefix
        log_with_context(
            logging.INFO, f"{prefix}Starting migration into app {self.ctx.app_id}"
        )
        self._checkpoint_ready = not self.ctx.resume
        try:
            self.db.connect()
            self._verify_target_app()

            start = MigrationPhase.IMPORTING_USERS
            if self.ctx.resume:
                start = self._load_checkpoint()

            if start is MigrationPhase.COMPLETED:
                log_with_context(
                    logging.INFO, "Checkpoint is already complete, nothing to import"
                )
            else:
                self._register_counters()
                for phase in _PHASES[_PHASES.index(start):]:
                    self.state.transition(phase)
                    self._run_phase(phase)

            self.state.transition(MigrationPhase.COMPLETED)
            if not self.ctx.dry_run:
                self.progress.update_progress(completed=True)
                self.save_checkpoint()
            log_with_context(logging.INFO, f"{prefix}Migration completed")
            return self.state
        except BaseException as e:
            self.state.fail(e)
            try:
                # Flushing unloaded state would overwrite the checkpoint on disk
                if self._checkpoint_ready:
                    self.save_checkpoint()
            finally:
                log_with_context(
                    logging.ERROR,
                    f"Migration failed: {e}. Checkpoint "
                    f"{'saved' if self._checkpoint_ready else 'left unchanged'} in {self.ctx.checkpoint_dir}; "
                    f"rerun with {self.ctx.resume_command} to continue",
                    exc_info=not isinstance(e, KeyboardInterrupt),
                )
            raise
        finally:
            self.db.close()
            self.progress.stop()

    def _verify_target_app(self) -> None:
        rows = self.db.query(APP_LOOKUP_SQL, (self.ctx.app_id,))
        if not rows:
            raise TargetAppNotFoundError(f"Target app {self.ctx.app_id} not found")
        log_with_context(
            logging.INFO,
            f"Target app: {rows[0].get('name') or self.ctx.app_id} ({self.ctx.app_id})",
        )

    def _register_counters(self) -> None:
        self.progress.create_counter(KIND_USERS, "Users")
        self.progress.create_counter(KIND_CHANNELS, "Channels")
        self.progress.create_counter(KIND_MESSAGES, "Messages")
        self.progress.create_counter(KIND_REACTIONS, "Reactions")

    def _run_phase(self, phase: MigrationPhase) -> None:
        if phase is MigrationPhase.IMPORTING_USERS:
            self.import_users()
        elif phase is MigrationPhase.IMPORTING_CHANNELS:
            self.import_channels()
        else:
            self.import_messages_and_reactions()

    # -- Phases ---------------------------------------------------------------

    def import_users(self) -> None:
        config = self.ctx.config
        log_with_context(logging.INFO, f"{self.ctx.log_prefix}Step 1/3: Importing users")
        for batch in self.adapter.users(config.user_batch_size):
            count = self.users.import_batch(batch, dry_run=self.ctx.dry_run)
            self.state.add_total(KIND_USERS, count)
            self.save_checkpoint()

    def import_channels(self) -> None:
        config = self.ctx.config
        log_with_context(logging.INFO, f"{self.ctx.log_prefix}Step 2/3: Importing channels")
        for batch in self.adapter.channels(self.ctx.channel_filter, config.channel_batch_size):
            count = self.channels.import_batch(batch, dry_run=self.ctx.dry_run)
            self.state.add_total(KIND_CHANNELS, count)
            self.save_checkpoint()

    def import_messages_and_reactions(self) -> None:
        log_with_context(
            logging.INFO, f"{self.ctx.log_prefix}Step 3/3: Importing messages and reactions"
        )
        allowed = set(self.ctx.channel_filter or [])
        for cid, _target_id in self.id_mapping.channels():
            channel_type, _, channel_id = cid.partition(":")
            if allowed and channel_id not in allowed:
                continue
            self.import_channel_messages(channel_type, channel_id)

    def import_channel_messages(self, channel_type: str, channel_id: str) -> None:
        cid = f"{channel_type}:{channel_id}"
        log_with_context(
            logging.INFO, f"{self.ctx.log_prefix}Importing messages of {cid}", channel=cid
        )
        batch_size = self.ctx.config.message_batch_size
        for batch in self.adapter.channel_messages(channel_type, channel_id, batch_size):
            messages = self.messages.import_batch(cid, batch, dry_run=self.ctx.dry_run)
            reactions = self.reactions.import_batch(cid, batch, dry_run=self.ctx.dry_run)
            self.state.add_total(KIND_MESSAGES, messages)
            self.state.add_total(KIND_REACTIONS, reactions)
            self.save_checkpoint()
