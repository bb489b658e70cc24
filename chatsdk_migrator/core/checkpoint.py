"""Checkpoint directory and atomic JSON persistence for resumable migrations."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

from chatsdk_migrator.constants import CHECKPOINT_ROOT
from chatsdk_migrator.exceptions import CheckpointError
from chatsdk_migrator.utils.logging import log_with_context


def new_checkpoint_dir(root: Path | str = CHECKPOINT_ROOT) -> Path:
    """Create a fresh checkpoint directory named after the current epoch millis."""
    path = Path(root) / str(int(time.time() * 1000))
    path.mkdir(parents=True, exist_ok=True)
    log_with_context(logging.DEBUG, f"Created checkpoint directory {path}")
    return path


def open_checkpoint_dir(path: Path | str) -> Path:
    """Return an existing checkpoint directory for resumption."""
    checkpoint_dir = Path(path)
    if not checkpoint_dir.is_dir():
        raise CheckpointError(f"Checkpoint directory not found: {checkpoint_dir}")
    return checkpoint_dir


def read_json(path: Path) -> Any | None:
    """Load a checkpoint file, returning None if absent.

    A file that exists but cannot be parsed is fatal for the run.
    """
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        raise CheckpointError(f"Failed to read checkpoint {path}: {e}") from e


def write_json_atomic(path: Path, data: Any) -> None:
    """Atomically save JSON to disk (write .tmp + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)
