"""SHA-256 content digests for snapshot archives."""

from __future__ import annotations

import hashlib
from pathlib import Path

_READ_CHUNK = 8192


def compute_checksum(file_path: str | Path) -> str:
    """Compute SHA-256 checksum of a file (lowercase hex)."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(_READ_CHUNK), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def checksum_bytes(data: bytes) -> str:
    """Compute SHA-256 checksum of in-memory bytes (lowercase hex)."""
    return hashlib.sha256(data).hexdigest()
