"""Filesystem helpers."""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")


def ensure_directory(path: Path) -> Path:
    """Create a directory if it does not exist."""

    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)
    return path


def natural_sort_key(path: Path) -> list:
    """Sort key that orders embedded numbers numerically (frame-2 < frame-10)."""

    return [int(part) if part.isdigit() else part.lower() for part in _DIGITS.split(path.name)]


def list_files_with_extensions(root: Path, extensions: set[str]) -> list[Path]:
    """Return files in root with given extensions, in natural order."""

    if not root.exists():
        return []
    files = [p for p in root.iterdir() if p.is_file() and p.suffix.lower() in extensions]
    return sorted(files, key=natural_sort_key)


def output_file(output_dir: Path, input_path: Path, suffix: str, postfix: str | None = None) -> Path:
    """Build `<output_dir>/<stem>[_<postfix>]<suffix>` for an input file."""

    if not suffix.startswith("."):
        suffix = "." + suffix
    name = input_path.stem + (f"_{postfix}" if postfix else "")
    return output_dir / f"{name}{suffix}"


def remove_tree(path: Path) -> bool:
    """Delete a directory tree, logging instead of raising on failure."""

    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.warning("Failed to clean up temporary files in %s: %s", path, exc)
        return False
    logger.debug("Removed temporary directory %s", path)
    return True


@contextmanager
def scratch_directory(prefix: str = "mediabatch_", keep: bool = False) -> Iterator[Path]:
    """Yield a private temporary directory that is removed on every exit path."""

    path = Path(tempfile.mkdtemp(prefix=prefix))
    logger.debug("Created scratch directory %s", path)
    try:
        yield path
    finally:
        if keep:
            logger.info("Keeping scratch frames in %s", path)
        else:
            remove_tree(path)
