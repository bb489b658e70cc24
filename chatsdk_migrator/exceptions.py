"""Custom exception hierarchy for the Stream Chat to ChatSDK migration tool."""


class MigratorError(Exception):
    """Base exception for all migration-related errors."""


class ConfigError(MigratorError):
    """Raised when configuration is invalid or missing."""


class CheckpointError(MigratorError):
    """Raised when a checkpoint file exists but cannot be read back."""


class MappingConflictError(MigratorError):
    """Raised when a source id would be remapped to a different target id."""


class DatabaseError(MigratorError):
    """Raised when the target store cannot be reached or initialized."""


class ExtractionError(MigratorError):
    """Raised when the source platform returns a response of unexpected shape."""


class TargetAppNotFoundError(MigratorError):
    """Raised when the target application does not exist in the target store."""


class InvalidTransitionError(MigratorError):
    """Raised when the orchestrator attempts an illegal phase transition."""
