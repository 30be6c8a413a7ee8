"""Database adapters."""

from idplane.adapters.db.app_db import AppDatabase

__all__ = ["AppDatabase"]
