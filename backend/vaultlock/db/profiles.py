"""Profile repository: the remote half of the lock preference."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional
from uuid import UUID

import asyncpg
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import RemoteUnavailable
from ..lock.models import Profile
from ..logging import get_logger
from .connection import get_connection

logger = get_logger("database")

# Errors that mean "the profile store could not be reached or refused"
DB_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    BotoCoreError,
    ClientError,
    OSError,
    asyncio.TimeoutError,
)

UPDATABLE_FIELDS = ("app_lock_type", "app_pin_hash", "auto_lock_minutes")

_PROFILE_COLUMNS = "id, email, app_lock_type, app_pin_hash, auto_lock_minutes"


class ProfileRepository:
    """Repository for the lock columns of ``profiles``."""

    @staticmethod
    def _row_to_profile(row: asyncpg.Record) -> Profile:
        """Convert a database row to a Profile object."""
        return Profile(
            id=str(row["id"]),
            email=row["email"],
            app_lock_type=row["app_lock_type"],
            app_pin_hash=row["app_pin_hash"],
            auto_lock_minutes=row["auto_lock_minutes"],
        )

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        """Fetch a profile by user id."""
        try:
            async with get_connection() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE id = $1",
                    UUID(user_id),
                )
        except DB_ERRORS as e:
            raise RemoteUnavailable(f"Profile lookup failed: {e}") from e
        return self._row_to_profile(row) if row else None

    async def update_profile(self, user_id: str, **fields: Any) -> Profile:
        """Update lock columns and return the stored profile."""
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update profile fields: {', '.join(sorted(unknown))}")
        if not fields:
            profile = await self.get_profile(user_id)
            if profile is None:
                raise RemoteUnavailable(f"Profile {user_id} not found")
            return profile

        names = list(fields)
        assignments = ", ".join(f"{name} = ${i}" for i, name in enumerate(names, start=1))
        query = (
            f"UPDATE profiles SET {assignments} "
            f"WHERE id = ${len(names) + 1} RETURNING {_PROFILE_COLUMNS}"
        )
        try:
            async with get_connection() as conn:
                row = await conn.fetchrow(query, *[fields[n] for n in names], UUID(user_id))
        except DB_ERRORS as e:
            raise RemoteUnavailable(f"Profile update failed: {e}") from e
        if row is None:
            raise RemoteUnavailable(f"Profile {user_id} not found")
        return self._row_to_profile(row)


class ActivityLogRepository:
    """Writes security events to ``activity_logs``."""

    async def log(self, user_id: str, action_type: str, details: Optional[dict] = None) -> None:
        """Insert one event. Failures are logged and never reach the caller."""
        try:
            async with get_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO activity_logs (user_id, action_type, resource_type, details)
                    VALUES ($1, $2, 'app_lock', $3::jsonb)
                    """,
                    UUID(user_id),
                    action_type,
                    json.dumps(details) if details is not None else None,
                )
        except (*DB_ERRORS, ValueError) as e:
            logger.warning(f"Failed to log activity {action_type}: {e}", extra={"user_id": user_id})
