"""Immutable migration context.

MigrationContext is a frozen dataclass that holds the configuration of a
migration run. It is created once by the CLI and shared (read-only) with the
orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from chatsdk_migrator.core.config import MigrationConfig


@dataclass(frozen=True)
class MigrationContext:
    """Immutable context for a migration run. Created once, shared everywhere."""

    # Target application in the ChatSDK store
    app_id: str

    # Checkpoint directory (id-mapping.json + progress.json)
    checkpoint_dir: Path

    # Mode flags
    dry_run: bool
    resume: bool

    config: MigrationConfig

    @property
    def channel_filter(self) -> list[str] | None:
        """Source channel id allow-list, or None for every channel."""
        return list(self.config.channels) or None

    @property
    def resume_command(self) -> str:
        """Operator hint printed when a run fails."""
        return f"--resume {self.checkpoint_dir}"

    @property
    def log_prefix(self) -> str:
        """Mode-aware log prefix, ``"[DRY RUN] "`` in dry runs."""
        return "[DRY RUN] " if self.dry_run else ""
