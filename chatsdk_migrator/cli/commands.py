#!/usr/bin/env python3
"""
Main execution module for the Stream Chat to ChatSDK migration tool.

Importing the subcommand modules registers them on the ``cli`` group.
"""

from chatsdk_migrator.cli import import_cmd, validate_cmd  # noqa: F401
from chatsdk_migrator.cli.common import cli, handle_exception  # noqa: F401


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
