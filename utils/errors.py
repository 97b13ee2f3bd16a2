"""Error taxonomy shared by the store, the engine and the CLI."""


class HorsaiError(Exception):
    """Base class for all signal-engine errors."""

    code = "HORSAI_ERROR"


class ValidationError(HorsaiError, ValueError):
    """Rejected input (bad action, malformed id). Never persisted."""

    code = "VALIDATION_ERROR"


class NotFoundError(HorsaiError):
    """Signal or portfolio missing, or not owned by the caller."""

    code = "NOT_FOUND"


class StorageError(HorsaiError):
    """Transient read/write failure against the store."""

    code = "STORAGE_ERROR"


class InsufficientDataError(HorsaiError):
    """Fewer than two usable portfolio-value observations in a window."""

    code = "INSUFFICIENT_DATA"
