"""Service integrations for Stream Chat extraction and ChatSDK database loading."""

__all__ = [
    "channel_importer",
    "database",
    "importer",
    "message_importer",
    "reaction_importer",
    "stream_adapter",
    "user_importer",
]
