"""Configuration helpers for the chat bridge daemon."""

from . import logging, settings  # noqa: F401  # pyright: ignore[reportUnusedImport]
