"""Shared helpers for the photo vault toolchain."""

from . import config, log, paths, tools, imaging, descriptors, models  # noqa: F401

__all__ = [
    "config",
    "log",
    "paths",
    "tools",
    "imaging",
    "descriptors",
    "models",
]
