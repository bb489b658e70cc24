"""CLI command handler for credential and connectivity validation."""

from __future__ import annotations

import logging
import sys

import click

from chatsdk_migrator.cli.common import cli, common_options, handle_exception
from chatsdk_migrator.services.stream_adapter import StreamAdapter
from chatsdk_migrator.utils.logging import log_with_context, setup_logger

# ---------------------------------------------------------------------------
# validate subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@click.option(
    "--sample-size",
    type=click.IntRange(min=1),
    default=10,
    show_default=True,
    help="Number of users and channels to fetch",
)
def validate(
    api_key: str,
    secret: str,
    config: str | None,
    verbose: bool,
    debug_api: bool,
    sample_size: int,
) -> None:
    """Check the Stream credentials by fetching a sample of users and channels.

    Nothing is written anywhere; no database connection is made.
    """
    setup_logger(verbose, debug_api)
    if config:
        log_with_context(logging.DEBUG, f"Ignoring --config {config} for validate")

    try:
        adapter = StreamAdapter.from_credentials(api_key, secret)
        counts = adapter.check_connection(sample_size)
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    log_with_context(logging.INFO, "✅ Stream credentials are valid")
    log_with_context(
        logging.INFO,
        f"   • Sampled {counts['users']} user(s) and {counts['channels']} channel(s)",
    )
    if counts["users"] == 0 and counts["channels"] == 0:
        log_with_context(
            logging.WARNING, "The Stream app looks empty; there is nothing to migrate"
        )
