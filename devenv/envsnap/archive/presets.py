"""
Snapshot presets and their inclusion policies.

Presets:
    - light: git repos and working trees only; drops dependency installs,
      build stores, build output and logs
    - medium: light + dependency installs (node_modules, .venv)
    - heavy: everything under each repository root

Invariants:
    - Exclusion is substring matching against the archive-relative path
    - heavy never excludes anything

How to change safely:
    - Adding a token to a preset changes what new snapshots contain;
      existing archives are restored as-is regardless of preset
    - Do not switch to glob matching
"""

from __future__ import annotations

from enum import Enum


class Preset(str, Enum):
    """Named inclusion policy controlling snapshot breadth."""

    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


DEPENDENCY_INSTALL_TOKENS: tuple[str, ...] = ("node_modules", ".venv")
BUILD_STORE_TOKENS: tuple[str, ...] = (".pnpm-store",)
BUILD_OUTPUT_TOKENS: tuple[str, ...] = ("dist",)
LOG_TOKENS: tuple[str, ...] = (".log",)

_EXCLUDE_TOKENS: dict[Preset, tuple[str, ...]] = {
    Preset.LIGHT: DEPENDENCY_INSTALL_TOKENS + BUILD_STORE_TOKENS + BUILD_OUTPUT_TOKENS + LOG_TOKENS,
    Preset.MEDIUM: BUILD_STORE_TOKENS + LOG_TOKENS,
    Preset.HEAVY: (),
}

_COMPRESSION_LEVEL: dict[Preset, int] = {
    Preset.LIGHT: 9,
    Preset.MEDIUM: 9,
    Preset.HEAVY: 6,
}


def exclude_tokens(preset: Preset) -> tuple[str, ...]:
    """Return the exclusion tokens for a preset."""
    return _EXCLUDE_TOKENS[Preset(preset)]


def compression_level(preset: Preset) -> int:
    """Return the gzip level for a preset."""
    return _COMPRESSION_LEVEL[Preset(preset)]


def is_excluded(relative_path: str, preset: Preset) -> bool:
    """Whether an archive-relative path is dropped under a preset.

    Any path containing one of the preset's tokens anywhere is excluded.
    """
    return any(token in relative_path for token in exclude_tokens(preset))
