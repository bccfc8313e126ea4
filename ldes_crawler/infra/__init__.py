"""Infra layer utilities (checkpoint storage)."""

from .storage import CheckpointStore, SQLiteManager

__all__ = ["CheckpointStore", "SQLiteManager"]
