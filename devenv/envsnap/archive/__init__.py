"""
Archive module for envsnap.

This module builds and unpacks snapshot archives:
- Preset-driven inclusion rules
- tar + gzip codec
- SHA-256 content digests

Invariants:
    - Archives are self-contained; restore never re-derives preset rules
    - Checksums are computed over the compressed archive bytes
"""

from .builder import ArchiveBuilder, BuildResult
from .checksum import checksum_bytes, compute_checksum
from .codec import ArchiveCodec, TarArchiveCodec
from .presets import Preset, compression_level, exclude_tokens, is_excluded

__all__ = [
    "ArchiveBuilder",
    "BuildResult",
    "ArchiveCodec",
    "TarArchiveCodec",
    "Preset",
    "compression_level",
    "exclude_tokens",
    "is_excluded",
    "compute_checksum",
    "checksum_bytes",
]
