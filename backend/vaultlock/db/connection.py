"""
Connection pool for the remote profile store.

The pool is created lazily on first use, from ``DATABASE_URL`` when set and
from AWS Secrets Manager otherwise. Schema migrations run once, right after
the pool comes up.
"""

import asyncio
import json
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

import asyncpg
import boto3

from ..logging import get_logger

logger = get_logger("database")

POOL_MIN_SIZE = 1
POOL_MAX_SIZE = 5

_pool: Optional[asyncpg.Pool] = None
_pool_lock = asyncio.Lock()
_database_url: Optional[str] = None


def configure_db(database_url: Optional[str]) -> None:
    """Set the URL used when the pool is first needed."""
    global _database_url
    _database_url = database_url or None


def _fetch_secret() -> dict:
    secret_name = os.getenv("DB_SECRET_NAME", "vaultlock/profile-db-credentials")
    region = os.getenv("AWS_REGION", "us-west-2")
    logger.debug(f"Reading profile store credentials from {secret_name} ({region})")
    client = boto3.client("secretsmanager", region_name=region)
    response = client.get_secret_value(SecretId=secret_name)
    return json.loads(response["SecretString"])


async def _connect_args() -> dict[str, Any]:
    url = _database_url or os.getenv("DATABASE_URL")
    if url:
        # Keep credentials out of the log
        logger.info(f"Profile store at {url.rsplit('@', 1)[-1]}")
        return {"dsn": url}

    creds = await asyncio.to_thread(_fetch_secret)
    logger.info(f"Profile store at {creds['host']}:{creds.get('port', 5432)} (Secrets Manager)")
    return {
        "host": creds["host"],
        "port": creds.get("port", 5432),
        "user": creds["username"],
        "password": creds["password"],
        "database": creds.get("database", "vaultlock"),
    }


async def _get_pool() -> asyncpg.Pool:
    global _pool
    async with _pool_lock:
        if _pool is None:
            pool = await asyncpg.create_pool(
                **await _connect_args(), min_size=POOL_MIN_SIZE, max_size=POOL_MAX_SIZE,
            )
            try:
                await run_migrations(pool)
            except asyncpg.PostgresError:
                await pool.close()
                raise
            _pool = pool
    return _pool


async def close_db() -> None:
    """Close the pool if one was opened."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Profile store pool closed")


@asynccontextmanager
async def get_connection():
    """Borrow a connection, opening the pool on first use."""
    pool = await _get_pool()
    async with pool.acquire() as conn:
        yield conn


async def run_migrations(pool: asyncpg.Pool) -> None:
    """Apply pending entries of ``MIGRATIONS``, each in its own transaction."""
    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                name TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        applied = {row["name"] for row in await conn.fetch("SELECT name FROM _migrations")}

        for name, sql in MIGRATIONS:
            if name in applied:
                continue
            logger.info(f"Applying migration {name}")
            try:
                async with conn.transaction():
                    await conn.execute(sql)
                    await conn.execute("INSERT INTO _migrations (name) VALUES ($1)", name)
            except asyncpg.PostgresError as e:
                logger.error(f"Migration {name} failed: {e}")
                raise


PROFILES_SQL = """
CREATE TABLE IF NOT EXISTS profiles (
    id UUID PRIMARY KEY,
    email TEXT NOT NULL,
    full_name TEXT,
    app_lock_type TEXT CHECK (app_lock_type IN ('pin', 'biometric', 'password')),
    app_pin_hash TEXT,
    -- fractional minutes; NULL or 0 means no idle lock
    auto_lock_minutes DOUBLE PRECISION,
    biometric_enabled BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE OR REPLACE FUNCTION touch_profile_updated_at()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS profiles_touch_updated_at ON profiles;
CREATE TRIGGER profiles_touch_updated_at
    BEFORE UPDATE ON profiles
    FOR EACH ROW
    EXECUTE FUNCTION touch_profile_updated_at();
"""

ACTIVITY_LOGS_SQL = """
CREATE TABLE IF NOT EXISTS activity_logs (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    action_type TEXT NOT NULL,
    resource_type TEXT,
    resource_id TEXT,
    details JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_activity_logs_user ON activity_logs(user_id, created_at DESC);
"""

MIGRATIONS = (
    ("001_create_profiles", PROFILES_SQL),
    ("002_create_activity_logs", ACTIVITY_LOGS_SQL),
)
