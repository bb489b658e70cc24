"""Core migration logic including configuration, checkpointing and orchestration."""

__all__ = [
    "checkpoint",
    "config",
    "context",
    "id_mapping",
    "migrator",
    "progress",
    "state",
]
