"""Shared constants for the Stream Chat to ChatSDK migration tool."""

from __future__ import annotations

import uuid

# ---------------------------------------------------------------------------
# Checkpoint directory
# ---------------------------------------------------------------------------

CHECKPOINT_ROOT = ".migration-cache"
ID_MAPPING_FILE = "id-mapping.json"
PROGRESS_FILE = "progress.json"

# ---------------------------------------------------------------------------
# Batch size defaults
# ---------------------------------------------------------------------------

DEFAULT_USER_BATCH_SIZE = 500
DEFAULT_CHANNEL_BATCH_SIZE = 100
DEFAULT_MESSAGE_BATCH_SIZE = 1000

# ---------------------------------------------------------------------------
# Target store schema
# ---------------------------------------------------------------------------

USER_TABLE = "app_user"
CHANNEL_TABLE = "channel"
CHANNEL_MEMBER_TABLE = "channel_member"
MESSAGE_TABLE = "message"
USER_MESSAGE_TABLE = "user_message"
REACTION_TABLE = "reaction"

USER_CONFLICT = "ON CONFLICT (app_id, id) DO NOTHING"
CHANNEL_CONFLICT = "ON CONFLICT (app_id, cid) DO NOTHING"
CHANNEL_MEMBER_CONFLICT = "ON CONFLICT (channel_id, app_id, user_id) DO NOTHING"
DO_NOTHING_CONFLICT = "ON CONFLICT DO NOTHING"

# Namespace for deterministic target ids (uuid5 of app id + source id)
TARGET_ID_NAMESPACE = uuid.UUID("5b0e8a52-4c1e-4f0a-9f6d-2a7c3e1d9b40")

# ---------------------------------------------------------------------------
# Source -> target value tables
# ---------------------------------------------------------------------------

CHANNEL_TYPE_MAP = {
    "messaging": "direct",
    "team": "team",
}
FALLBACK_CHANNEL_TYPE = "group"

DEFAULT_MEMBER_ROLE = "member"
DEFAULT_REACTION_TYPE = "👍"
UNKNOWN_USER_ID = "unknown"
MESSAGE_STATUS_SENT = "sent"

# user_message.flags
FLAG_READ = 1
FLAG_UNREAD = 0

# ---------------------------------------------------------------------------
# Entity kinds (progress counters and observer events)
# ---------------------------------------------------------------------------

KIND_USERS = "users"
KIND_CHANNELS = "channels"
KIND_MESSAGES = "messages"
KIND_REACTIONS = "reactions"
