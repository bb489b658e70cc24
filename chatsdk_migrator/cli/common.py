"""Shared CLI infrastructure: option decorators, error handlers, and the CLI group."""

from __future__ import annotations

import logging
from typing import Callable

import click
from psycopg2 import Error as PsycopgError
from stream_chat.base.exceptions import StreamAPIException

import chatsdk_migrator
from chatsdk_migrator.exceptions import CheckpointError, MigratorError
from chatsdk_migrator.utils.logging import log_with_context

# Create logger instance
logger = logging.getLogger("chatsdk_migrator")


# ---------------------------------------------------------------------------
# Shared option decorator
# ---------------------------------------------------------------------------


def common_options(f: Callable[..., None]) -> Callable[..., None]:
    """Decorator that adds options shared across multiple subcommands.

    Args:
        f: The Click command function to decorate.

    Returns:
        The decorated function with common options attached.
    """
    f = click.option(
        "--api-key",
        required=True,
        envvar="STREAM_API_KEY",
        help="Stream Chat API key (or STREAM_API_KEY)",
    )(f)
    f = click.option(
        "--secret",
        required=True,
        envvar="STREAM_API_SECRET",
        help="Stream Chat API secret (or STREAM_API_SECRET)",
    )(f)
    f = click.option(
        "--config",
        default=None,
        type=click.Path(dir_okay=False),
        help="Path to an optional config YAML",
    )(f)
    f = click.option(
        "--verbose",
        "-v",
        is_flag=True,
        default=False,
        help="Enable verbose console logging (shows DEBUG level messages)",
    )(f)
    f = click.option(
        "--debug-api",
        is_flag=True,
        default=False,
        help="Enable detailed Stream API request/response logging (creates very large log files)",
    )(f)
    return f


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=chatsdk_migrator.__version__, prog_name="chatsdk-migrate")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Stream Chat to ChatSDK migration tool.

    Args:
        ctx: The Click context (injected by ``@click.pass_context``).
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


def handle_stream_error(e: StreamAPIException) -> None:
    """Handle Stream API errors with specific messages.

    Args:
        e: The Stream API error to handle.
    """
    status = getattr(e, "status_code", None)
    if status in (401, 403):
        log_with_context(logging.ERROR, f"Stream rejected the credentials: {e}")
        log_with_context(
            logging.INFO,
            "Check that --api-key and --secret belong to the same Stream app "
            "and that the secret is a server-side secret.",
        )
    elif status == 429:
        log_with_context(logging.ERROR, f"Stream rate limit exceeded: {e}")
        log_with_context(
            logging.INFO,
            "Lower the batch sizes and rerun with --resume to continue.",
        )
    else:
        log_with_context(
            logging.ERROR, f"Stream API error during migration: {e}", status_code=status
        )


def handle_exception(e: BaseException) -> None:
    """Handle different types of exceptions.

    Args:
        e: The exception to handle.
    """
    if isinstance(e, CheckpointError):
        log_with_context(logging.ERROR, str(e))
        log_with_context(
            logging.INFO,
            "The checkpoint directory is damaged; fix or remove the file before resuming.",
        )
    elif isinstance(e, MigratorError):
        log_with_context(logging.ERROR, str(e))
    elif isinstance(e, StreamAPIException):
        handle_stream_error(e)
    elif isinstance(e, PsycopgError):
        log_with_context(logging.ERROR, f"Database error: {e}")
        log_with_context(
            logging.INFO,
            "Rows written by completed batches are kept; rerun with --resume to continue.",
        )
    elif isinstance(e, KeyboardInterrupt):
        log_with_context(logging.WARNING, "Migration interrupted by user.")
        log_with_context(
            logging.INFO, "🔄 You can resume the migration with the --resume option."
        )
        log_with_context(
            logging.INFO, "📝 All progress and logs have been saved to disk."
        )
    else:
        log_with_context(logging.ERROR, f"Migration failed: {e}", exc_info=True)
