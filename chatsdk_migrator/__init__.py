#!/usr/bin/env python3
"""
Stream Chat to ChatSDK migration tool
"""

__version__ = "0.1.0"

from chatsdk_migrator.core.config import load_config, resolve_config
from chatsdk_migrator.core.context import MigrationContext
from chatsdk_migrator.core.id_mapping import IdMappingCache

# Import the main classes for easier access
from chatsdk_migrator.core.migrator import ChatSDKMigrator
from chatsdk_migrator.core.progress import ProgressObserver, ProgressTracker
from chatsdk_migrator.core.state import MigrationPhase, MigrationState
from chatsdk_migrator.services.database import Database
from chatsdk_migrator.services.stream_adapter import StreamAdapter
