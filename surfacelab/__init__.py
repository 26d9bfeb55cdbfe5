# -*- coding: utf-8 -*-
"""NURBS patch editing kernel: evaluation, refinement, continuity and history."""
from importlib.metadata import PackageNotFoundError, version


try:
    __version__ = version("surfacelab")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"
