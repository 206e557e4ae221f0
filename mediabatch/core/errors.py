"""Domain-specific exceptions for batch conversion."""

from pathlib import Path


class ValidationError(ValueError):
    """Raised when a task or its options fail validation."""


class InvalidMediaError(ValidationError):
    """Raised when an input file is missing or of an unsupported type."""

    def __init__(self, path: Path, reason: str | None = None, label: str = "media"):
        message = f"Invalid {label} file: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path


class OperationError(RuntimeError):
    """Raised when a conversion fails while running."""


class EmptyInputError(OperationError):
    """Raised when a spritesheet is requested without frames."""


class DimensionMismatchError(OperationError):
    """Raised when frames to be packed do not share one size."""


class GeometryInconsistencyError(OperationError):
    """Raised when a sheet cannot be split with the resolved grid."""


class TaskStateError(RuntimeError):
    """Raised on an illegal task lifecycle transition."""


class PartialExtractionWarning(UserWarning):
    """Issued when some grid cells fall outside the sheet raster."""
