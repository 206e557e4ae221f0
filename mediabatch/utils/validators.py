"""Validation helpers for task inputs and options."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from ..core.errors import InvalidMediaError, ValidationError


ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}
ALLOWED_AUDIO_SOURCE_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv"}
ALLOWED_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}
ALLOWED_PDF_EXTENSIONS = {".pdf"}


def validate_input_path(path: Path | str | None, allowed: set[str], label: str = "media") -> Path:
    """Ensure an input path exists and has one of the allowed extensions."""

    if not path:
        raise InvalidMediaError(Path("<unset>"), reason="No path provided", label=label)
    path = Path(path)
    if not path.exists():
        raise InvalidMediaError(path, reason="File not found", label=label)
    if path.suffix.lower() not in allowed:
        raise InvalidMediaError(
            path,
            reason=f"Unsupported format {path.suffix or '<none>'}, use one of {', '.join(sorted(allowed))}",
            label=label,
        )
    return path


def parse_optional_int(value: Any, field: str, minimum: int = 1) -> Optional[int]:
    """Parse an integer >= minimum, if provided."""

    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        parsed = int(round(float(value)))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer") from exc
    if parsed < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return parsed


def parse_optional_float(value: Any, field: str) -> Optional[float]:
    """Parse a positive float, if provided."""

    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if parsed <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return parsed


def parse_choice(value: Any, field: str, choices: set[str], default: str) -> str:
    """Normalize a case-insensitive string option against allowed values."""

    if value is None or value == "":
        return default
    normalized = str(value).strip().lower()
    if normalized not in choices:
        raise ValidationError(f"{field} must be one of {', '.join(sorted(choices))}")
    return normalized


def option_int(options: Mapping[str, Any], key: str, minimum: int = 1) -> Optional[int]:
    return parse_optional_int(options.get(key), key, minimum)


def option_float(options: Mapping[str, Any], key: str) -> Optional[float]:
    return parse_optional_float(options.get(key), key)


def option_at_least(options: Mapping[str, Any], key: str, floor: int) -> Optional[int]:
    """Read a positive int option and raise it to a floor instead of rejecting it."""

    value = parse_optional_int(options.get(key), key)
    if value is None:
        return None
    return max(floor, value)


def validate_quality(value: Optional[int], field: str = "quality") -> None:
    """Ensure an encoder quality is in the 1-100 range."""

    if value is None:
        return
    if value < 1 or value > 100:
        raise ValidationError(f"{field} must be between 1 and 100")
