"""Content fingerprints used to compare two snapshots of the same file."""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class Fingerprint:
    """A snapshot of a file's content and modification time.

    Attributes:
        digest (str): SHA-256 hex digest of the raw bytes.
        mtime_ms (float): Modification time in milliseconds since the epoch.
    """

    digest: str
    mtime_ms: float


def file_digest(path: Path) -> str | None:
    """Hashes a file's raw bytes.

    Returns:
        str | None: The SHA-256 hex digest, or None if the file cannot be read.
    """
    h = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            while chunk := f.read(_CHUNK_SIZE):
                h.update(chunk)
    except OSError as e:
        logger.debug(f"Cannot hash {path}: {e}")
        return None
    return h.hexdigest()


def file_mtime_ms(path: Path) -> float:
    """Returns the modification time in milliseconds, or 0.0 if the file is missing."""
    try:
        return path.stat().st_mtime_ns / 1_000_000
    except OSError:
        return 0.0


def fingerprint(path: Path) -> Fingerprint | None:
    """Captures the digest and modification time of a file.

    Args:
        path (Path): The file to snapshot.

    Returns:
        Fingerprint | None: The snapshot, or None if the file is absent or unreadable.
    """
    try:
        mtime_ms = path.stat().st_mtime_ns / 1_000_000
    except OSError:
        return None
    digest = file_digest(path)
    if digest is None:
        return None
    return Fingerprint(digest=digest, mtime_ms=mtime_ms)
