"""User and role directory."""

from idplane.core.users.service import UserService

__all__ = ["UserService"]
