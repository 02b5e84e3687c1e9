"""SQLite-backed store of per-user authentication records."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from nation_bot.models.auth import UserAuthRecord

logger = logging.getLogger(__name__)


class SQLiteUserAuthStore:
    """Keyed auth record storage with whole-record read-modify-write.

    Every mutation runs under one in-process lock and one SQLite transaction,
    so concurrent writes for the same user cannot interleave.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_auth_records (
                    user_key TEXT PRIMARY KEY,
                    is_authenticated INTEGER NOT NULL DEFAULT 0,
                    provider_user_id TEXT,
                    encrypted_credential TEXT,
                    last_login TEXT
                )
                """
            )

    def get(self, user_key: str) -> Optional[UserAuthRecord]:
        with self._connect() as conn:
            return self._fetch(conn, str(user_key))

    def put(
        self,
        user_key: str,
        *,
        is_authenticated: bool,
        provider_user_id: Optional[str] = None,
        encrypted_credential: Optional[str] = None,
    ) -> UserAuthRecord:
        """Upsert a record, preserving fields that are not supplied."""
        key = str(user_key)
        with self._lock, self._connect() as conn:
            record = self._fetch(conn, key) or UserAuthRecord(user_key=key)
            record.is_authenticated = is_authenticated
            if is_authenticated:
                record.last_login = datetime.now(timezone.utc)
            if provider_user_id:
                record.provider_user_id = provider_user_id
            if encrypted_credential:
                record.encrypted_credential = encrypted_credential
            self._save(conn, record)

        logger.info(
            "Updated auth status for user %s: authenticated=%s, has_credential=%s",
            key,
            record.is_authenticated,
            record.encrypted_credential is not None,
        )
        return record

    def clear_credentials(self, user_key: str) -> Optional[UserAuthRecord]:
        """Reset the auth flag and drop the credential; keep everything else."""
        key = str(user_key)
        with self._lock, self._connect() as conn:
            record = self._fetch(conn, key)
            if record is None:
                return None
            record.is_authenticated = False
            record.encrypted_credential = None
            self._save(conn, record)
        return record

    def _fetch(self, conn: sqlite3.Connection, key: str) -> Optional[UserAuthRecord]:
        row = conn.execute(
            "SELECT * FROM user_auth_records WHERE user_key = ?",
            (key,),
        ).fetchone()
        if not row:
            return None
        last_login = datetime.fromisoformat(row["last_login"]) if row["last_login"] else None
        return UserAuthRecord(
            user_key=row["user_key"],
            is_authenticated=bool(row["is_authenticated"]),
            provider_user_id=row["provider_user_id"],
            encrypted_credential=row["encrypted_credential"],
            last_login=last_login,
        )

    def _save(self, conn: sqlite3.Connection, record: UserAuthRecord) -> None:
        conn.execute(
            """
            INSERT INTO user_auth_records (
                user_key,
                is_authenticated,
                provider_user_id,
                encrypted_credential,
                last_login
            )
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_key) DO UPDATE SET
                is_authenticated = excluded.is_authenticated,
                provider_user_id = excluded.provider_user_id,
                encrypted_credential = excluded.encrypted_credential,
                last_login = excluded.last_login
            """,
            (
                record.user_key,
                int(record.is_authenticated),
                record.provider_user_id,
                record.encrypted_credential,
                record.last_login.isoformat() if record.last_login else None,
            ),
        )


__all__ = ["SQLiteUserAuthStore"]
