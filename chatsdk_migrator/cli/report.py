"""
Run summary and report generation for Stream Chat to ChatSDK migration
"""

from __future__ import annotations

import datetime
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from chatsdk_migrator.constants import KIND_CHANNELS, KIND_MESSAGES, KIND_REACTIONS, KIND_USERS
from chatsdk_migrator.core.migrator import ChatSDKMigrator
from chatsdk_migrator.utils.logging import log_with_context

_KINDS = [KIND_USERS, KIND_CHANNELS, KIND_MESSAGES, KIND_REACTIONS]


def build_report(migrator: ChatSDKMigrator) -> dict[str, Any]:
    """Collect the state of a (possibly failed) run into a plain dict."""
    ctx = migrator.ctx
    state = migrator.state
    progress = migrator.progress.get_progress()
    return {
        "migration_summary": {
            "timestamp": datetime.datetime.now().isoformat(),
            "app_id": ctx.app_id,
            "dry_run": ctx.dry_run,
            "resumed": ctx.resume,
            "status": state.phase.value,
            "checkpoint_dir": str(ctx.checkpoint_dir),
            "elapsed_seconds": round(migrator.progress.elapsed().total_seconds(), 1),
            "error": state.error,
        },
        "this_run": dict(state.run_totals),
        "checkpoint_totals": {
            KIND_USERS: progress.users_imported,
            KIND_CHANNELS: progress.channels_imported,
            KIND_MESSAGES: progress.messages_imported,
            KIND_REACTIONS: progress.reactions_imported,
        },
        "id_mappings": migrator.id_mapping.stats(),
        "channel_filter": ctx.channel_filter or [],
        "phases": [phase.value for phase in state.history],
    }


def generate_report(
    migrator: ChatSDKMigrator, output_dir: str, output_file: str = "migration_report.yaml"
) -> str:
    """Write the run report as YAML into the run's log directory."""
    report_path = os.path.join(output_dir, output_file)
    report = build_report(migrator)
    with open(report_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(report, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    log_with_context(logging.INFO, f"Migration report written to {report_path}")
    return report_path


def print_run_summary(migrator: ChatSDKMigrator, report_file: str | None = None) -> None:
    """Print the per-entity counts of a run to the console."""
    ctx = migrator.ctx
    state = migrator.state
    totals = state.run_totals
    verb = "would be imported" if ctx.dry_run else "imported"

    print("\n" + "=" * 80)
    print("DRY RUN SUMMARY" if ctx.dry_run else "MIGRATION SUMMARY")
    print("=" * 80)
    for kind in _KINDS:
        print(f"{kind.capitalize():<10} {verb}: {totals[kind]}")
    print(f"Elapsed: {migrator.progress.elapsed()}")
    stats = migrator.id_mapping.stats()
    print(
        f"Id mappings: {stats['users']} users, {stats['channels']} channels, "
        f"{stats['messages']} messages"
    )
    if report_file:
        print(f"\nDetailed report saved to {report_file}")
    print("=" * 80)

    if state.completed:
        if ctx.dry_run:
            print("\n✅ Dry run completed successfully!")
            print("To perform the actual migration, run again without --dry-run")
        else:
            print("\n✅ Migration completed successfully!")
            print(f"Checkpoint saved to: {ctx.checkpoint_dir}")
    else:
        print("\n❌ Migration failed")
        if state.error:
            print(f"Error: {state.error}")
        print(f"Checkpoint saved to: {ctx.checkpoint_dir}")
        print(f"Resume with: {ctx.resume_command}")
    print("=" * 80)


def print_setup_failure(
    error: BaseException, dry_run: bool = False, checkpoint_dir: Path | None = None
) -> None:
    """Print the summary banner for a run that failed before the migrator existed."""
    verb = "would be imported" if dry_run else "imported"

    print("\n" + "=" * 80)
    print("DRY RUN SUMMARY" if dry_run else "MIGRATION SUMMARY")
    print("=" * 80)
    for kind in _KINDS:
        print(f"{kind.capitalize():<10} {verb}: 0")
    print("=" * 80)

    print("\n❌ Migration failed before any data was read")
    print(f"Error: {type(error).__name__}: {error}")
    if checkpoint_dir is not None:
        print(f"Checkpoint: {checkpoint_dir}")
    print("=" * 80)
