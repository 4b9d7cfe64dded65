"""rescontent: residential content service for transcripts, pages and social posts."""

from __future__ import annotations

import importlib.metadata
import warnings

FALLBACK_VERSION = "0.0.0+unknown"


def _resolve_version(distribution: str) -> str:
    """Installed version of ``distribution``, or FALLBACK_VERSION with a warning."""
    try:
        return importlib.metadata.version(distribution)
    except importlib.metadata.PackageNotFoundError:
        warnings.warn(
            f"{distribution!r} is not installed; reporting version {FALLBACK_VERSION}",
            RuntimeWarning,
            stacklevel=2,
        )
        return FALLBACK_VERSION


__version__ = _resolve_version("rescontent")
