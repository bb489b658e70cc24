"""Unit test configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from chatsdk_migrator.core.id_mapping import IdMappingCache
from chatsdk_migrator.core.progress import ProgressTracker

APP_ID = "app-1"


@pytest.fixture()
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture()
def id_mapping(cache_dir: Path) -> IdMappingCache:
    return IdMappingCache(cache_dir)


@pytest.fixture()
def progress(cache_dir: Path) -> ProgressTracker:
    return ProgressTracker(cache_dir)


@pytest.fixture()
def importer_args(in_memory_db, id_mapping, progress):
    """Positional constructor arguments shared by every importer."""
    return (in_memory_db, APP_ID, id_mapping, progress)
