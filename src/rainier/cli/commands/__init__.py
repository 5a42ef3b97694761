"""CLI command modules."""

from . import run, validate, info

__all__ = ["run", "validate", "info"]
