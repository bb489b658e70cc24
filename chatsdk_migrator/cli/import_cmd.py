"""CLI command handler for the import-stream workflow."""

from __future__ import annotations

import datetime
import logging
import os
import sys
from pathlib import Path
from types import SimpleNamespace

import click
import yaml

from chatsdk_migrator.cli.common import cli, common_options, handle_exception
from chatsdk_migrator.cli.progress_bars import TqdmProgressObserver
from chatsdk_migrator.cli.report import generate_report, print_run_summary, print_setup_failure
from chatsdk_migrator.core.checkpoint import new_checkpoint_dir, open_checkpoint_dir
from chatsdk_migrator.core.config import parse_channel_list, resolve_config
from chatsdk_migrator.core.context import MigrationContext
from chatsdk_migrator.core.migrator import ChatSDKMigrator
from chatsdk_migrator.services.database import Database
from chatsdk_migrator.services.stream_adapter import StreamAdapter
from chatsdk_migrator.utils.logging import log_with_context, setup_logger

# Create logger instance
logger = logging.getLogger("chatsdk_migrator")


# ---------------------------------------------------------------------------
# import-stream subcommand
# ---------------------------------------------------------------------------


@cli.command("import-stream")
@common_options
@click.option("--target-app-id", required=True, help="ChatSDK app to import into")
@click.option("--db-host", default=None, help="Database host [env DB_HOST, default localhost]")
@click.option("--db-port", type=int, default=None, help="Database port [env DB_PORT, default 5432]")
@click.option("--db-name", default=None, help="Database name [env DB_NAME, default chatsdk]")
@click.option("--db-user", default=None, help="Database user [env DB_USER, default chatsdk]")
@click.option("--db-password", default=None, help="Database password [env DB_PASSWORD]")
@click.option("--db-ssl", is_flag=True, default=False, help="Require SSL for the database connection")
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Run every transformation and count rows without writing to the database",
)
@click.option(
    "--resume",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Resume from an existing checkpoint directory",
)
@click.option(
    "--channels",
    multiple=True,
    help="Only import these Stream channel ids (repeatable or comma separated)",
)
@click.option("--user-batch-size", type=click.IntRange(min=1), default=None)
@click.option("--channel-batch-size", type=click.IntRange(min=1), default=None)
@click.option("--message-batch-size", type=click.IntRange(min=1), default=None)
def import_stream(
    api_key: str,
    secret: str,
    config: str | None,
    verbose: bool,
    debug_api: bool,
    target_app_id: str,
    db_host: str | None,
    db_port: int | None,
    db_name: str | None,
    db_user: str | None,
    db_password: str | None,
    db_ssl: bool,
    dry_run: bool,
    resume: Path | None,
    channels: tuple[str, ...],
    user_batch_size: int | None,
    channel_batch_size: int | None,
    message_batch_size: int | None,
) -> None:
    """Import users, channels, messages and reactions from Stream Chat.

    Args:
        api_key: Stream Chat API key.
        secret: Stream Chat API secret.
        config: Path to an optional config YAML.
        verbose: Enable verbose console logging.
        debug_api: Enable detailed API request/response logging.
        target_app_id: ChatSDK app receiving the data.
        dry_run: Transform and count without writing.
        resume: Existing checkpoint directory to continue from.
        channels: Channel id allow-list.
    """
    args = SimpleNamespace(
        target_app_id=target_app_id,
        config=config,
        dry_run=dry_run,
        resume=resume,
        channels=parse_channel_list(channels),
        verbose=verbose,
        debug_api=debug_api,
    )

    # Create output directory early so all operations are logged to file
    output_dir = create_migration_output_directory()
    setup_logger(verbose, debug_api, output_dir)

    log_startup_info(args)
    log_with_context(logging.INFO, f"Output directory: {output_dir}")

    migrator: ChatSDKMigrator | None = None
    setup_error: BaseException | None = None
    try:
        migration_config = resolve_config(
            Path(config) if config else None,
            db_overrides={
                "host": db_host,
                "port": db_port,
                "database": db_name,
                "user": db_user,
                "password": db_password,
                "ssl": True if db_ssl else None,
            },
            user_batch_size=user_batch_size,
            channel_batch_size=channel_batch_size,
            message_batch_size=message_batch_size,
            channels=args.channels,
        )
        checkpoint_dir = open_checkpoint_dir(resume) if resume else new_checkpoint_dir()
        log_with_context(
            logging.INFO,
            f"{'Resuming from' if resume else 'Checkpoint directory'}: {checkpoint_dir}",
        )

        ctx = MigrationContext(
            app_id=target_app_id,
            checkpoint_dir=checkpoint_dir,
            dry_run=dry_run,
            resume=resume is not None,
            config=migration_config,
        )
        if dry_run:
            log_with_context(logging.INFO, "🔍 DRY RUN MODE - No data will be written")

        migrator = ChatSDKMigrator(
            ctx,
            StreamAdapter.from_credentials(api_key, secret),
            Database(migration_config.database),
        )
        migrator.progress.subscribe(TqdmProgressObserver())
        migrator.migrate()
    except (Exception, KeyboardInterrupt) as e:
        if migrator is None:
            setup_error = e
        handle_exception(e)
        sys.exit(1)
    finally:
        if setup_error is not None:
            print_setup_failure(setup_error, dry_run, resume)
        elif migrator is not None:
            report_file = None
            try:
                report_file = generate_report(migrator, output_dir)
            except (OSError, yaml.YAMLError) as report_error:
                log_with_context(
                    logging.WARNING, f"Failed to write migration report: {report_error}"
                )
            print_run_summary(migrator, report_file)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def log_startup_info(args: SimpleNamespace) -> None:
    """Log startup information.

    Args:
        args: Parsed CLI arguments containing migration parameters.
    """
    log_with_context(logging.INFO, "Starting migration with the following parameters:")
    log_with_context(logging.INFO, f"- Target app: {args.target_app_id}")
    log_with_context(logging.INFO, f"- Config: {args.config or '(none)'}")
    log_with_context(logging.INFO, f"- Dry run: {args.dry_run}")
    log_with_context(logging.INFO, f"- Resume: {args.resume or 'no'}")
    log_with_context(
        logging.INFO, f"- Channels: {', '.join(args.channels) if args.channels else 'all'}"
    )
    log_with_context(logging.INFO, f"- Verbose logging: {args.verbose}")
    log_with_context(logging.INFO, f"- Debug API calls: {args.debug_api}")


def create_migration_output_directory() -> str:
    """Create output directory for migration with timestamp.

    Returns:
        The path to the newly created output directory.
    """
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = f"migration_logs/run_{timestamp}"
    os.makedirs(output_dir, exist_ok=True)
    return output_dir
