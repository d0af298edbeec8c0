"""
Profile Store (SQLite)

Thermal profiles joined with the device vendor credentials of their users.
Each call opens its own connection and runs in a worker thread.
"""

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from .exceptions import PersistenceError
from .models import Credential, ThermalProfile

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    email                    TEXT PRIMARY KEY,
    eight_user_id            TEXT    NOT NULL,
    eight_access_token       TEXT    NOT NULL,
    eight_refresh_token      TEXT    NOT NULL,
    eight_token_expires_at   INTEGER NOT NULL,
    updated_at               TEXT    NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS user_temperature_profiles (
    email                    TEXT PRIMARY KEY REFERENCES users(email),
    bed_time                 TEXT    NOT NULL,
    wakeup_time              TEXT    NOT NULL,
    timezone_tz              TEXT    NOT NULL,
    initial_sleep_level      INTEGER NOT NULL,
    mid_stage_sleep_level    INTEGER NOT NULL,
    final_sleep_level        INTEGER NOT NULL,
    updated_at               TEXT    NOT NULL DEFAULT (datetime('now'))
);
"""

PROFILE_QUERY = """
SELECT p.email, p.bed_time, p.wakeup_time, p.timezone_tz,
       p.initial_sleep_level, p.mid_stage_sleep_level, p.final_sleep_level,
       u.eight_access_token, u.eight_refresh_token, u.eight_token_expires_at,
       u.eight_user_id
FROM user_temperature_profiles p
INNER JOIN users u ON u.email = p.email
ORDER BY p.email
"""


def _to_epoch(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


class ProfileStore:
    """Relational store for profiles and credentials."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _conn(self) -> sqlite3.Connection:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _execute(self, sql: str, params: tuple = ()) -> None:
        try:
            conn = self._conn()
            try:
                with conn:
                    conn.execute(sql, params)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Database write failed: {e}") from e

    # Blocking operations

    def initialize_sync(self) -> None:
        """Create the tables if they do not exist."""
        try:
            conn = self._conn()
            try:
                conn.executescript(SCHEMA)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to initialize database: {e}") from e
        logger.debug(f"Profile store ready at {self.db_path}")

    def fetch_profiles_sync(self) -> list[tuple[ThermalProfile, Credential]]:
        """Load every profile with the credential of its user.

        Raises:
            PersistenceError: If the query fails
        """
        try:
            conn = self._conn()
            try:
                rows = conn.execute(PROFILE_QUERY).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to fetch profiles: {e}") from e

        profiles = []
        for row in rows:
            profile = ThermalProfile(
                email=row[0],
                bed_time=row[1],
                wake_time=row[2],
                timezone=row[3],
                initial_level=row[4],
                mid_level=row[5],
                final_level=row[6],
            )
            credential = Credential(
                access_token=row[7],
                refresh_token=row[8],
                expires_at=datetime.fromtimestamp(row[9], tz=timezone.utc),
                device_user_id=row[10],
            )
            profiles.append((profile, credential))

        logger.info(f"Fetched {len(profiles)} thermal profile(s)")
        return profiles

    def persist_credential_sync(self, email: str, credential: Credential) -> None:
        """Write a refreshed credential back to the user's row.

        Raises:
            PersistenceError: If the update fails
        """
        self._execute(
            """
            UPDATE users SET
                eight_access_token     = ?,
                eight_refresh_token    = ?,
                eight_token_expires_at = ?,
                eight_user_id          = ?,
                updated_at             = datetime('now')
            WHERE email = ?
            """,
            (
                credential.access_token,
                credential.refresh_token,
                _to_epoch(credential.expires_at),
                credential.device_user_id,
                email,
            ),
        )

    def upsert_user(self, email: str, credential: Credential) -> None:
        """Insert or replace a user and its credential."""
        self._execute(
            """
            INSERT INTO users (email, eight_user_id, eight_access_token,
                               eight_refresh_token, eight_token_expires_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(email) DO UPDATE SET
                eight_user_id          = excluded.eight_user_id,
                eight_access_token     = excluded.eight_access_token,
                eight_refresh_token    = excluded.eight_refresh_token,
                eight_token_expires_at = excluded.eight_token_expires_at,
                updated_at             = datetime('now')
            """,
            (
                email,
                credential.device_user_id,
                credential.access_token,
                credential.refresh_token,
                _to_epoch(credential.expires_at),
            ),
        )

    def upsert_profile(self, profile: ThermalProfile) -> None:
        """Insert or replace a thermal profile."""
        self._execute(
            """
            INSERT INTO user_temperature_profiles (email, bed_time, wakeup_time, timezone_tz,
                initial_sleep_level, mid_stage_sleep_level, final_sleep_level)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(email) DO UPDATE SET
                bed_time              = excluded.bed_time,
                wakeup_time           = excluded.wakeup_time,
                timezone_tz           = excluded.timezone_tz,
                initial_sleep_level   = excluded.initial_sleep_level,
                mid_stage_sleep_level = excluded.mid_stage_sleep_level,
                final_sleep_level     = excluded.final_sleep_level,
                updated_at            = datetime('now')
            """,
            (
                profile.email,
                profile.bed_time,
                profile.wake_time,
                profile.timezone,
                profile.initial_level,
                profile.mid_level,
                profile.final_level,
            ),
        )

    # Async interface used by the controller

    async def initialize(self) -> None:
        await asyncio.to_thread(self.initialize_sync)

    async def fetch_profiles(self) -> list[tuple[ThermalProfile, Credential]]:
        return await asyncio.to_thread(self.fetch_profiles_sync)

    async def persist_credential(self, email: str, credential: Credential) -> None:
        await asyncio.to_thread(self.persist_credential_sync, email, credential)
