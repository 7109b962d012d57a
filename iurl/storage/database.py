"""SQLite database operations for iurl."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite

from ..scanner.models import AllowlistEntry, DailyStats, HistoryEntry, ScanResult

logger = logging.getLogger(__name__)

# Rows for unauthenticated callers are stored under this key.
GUEST_USER = ""


def _user_key(user_id: Optional[str]) -> str:
    return user_id or GUEST_USER


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class Database:
    """Async SQLite database for allowlists, scan history and daily stats."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self):
        """Establish database connection and create tables."""
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row
        # Best-effort because some SQLite builds/settings may reject these pragmas.
        try:
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")
            await self._connection.execute("PRAGMA busy_timeout=5000")
            await self._connection.commit()
        except aiosqlite.Error:
            logger.debug("SQLite pragmas rejected; continuing with defaults")
        await self._create_tables()

    async def close(self):
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _create_tables(self):
        """Create database tables if they don't exist."""
        async with self._lock:
            await self._connection.executescript(
                """
                    CREATE TABLE IF NOT EXISTS allowlist_entries (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        domain TEXT NOT NULL,
                        added_at TEXT NOT NULL,
                        UNIQUE (user_id, domain)
                    );

                    CREATE TABLE IF NOT EXISTS scan_history (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        url TEXT NOT NULL,
                        verdict TEXT NOT NULL,
                        score INTEGER NOT NULL,
                        safe INTEGER NOT NULL,
                        reasons TEXT,
                        factors TEXT,
                        scan_count INTEGER DEFAULT 1,
                        last_scanned_at TEXT NOT NULL,
                        UNIQUE (user_id, url)
                    );

                    CREATE TABLE IF NOT EXISTS daily_stats (
                        user_id TEXT NOT NULL,
                        day TEXT NOT NULL,
                        links_checked INTEGER DEFAULT 0,
                        threats_blocked INTEGER DEFAULT 0,
                        PRIMARY KEY (user_id, day)
                    );

                    CREATE INDEX IF NOT EXISTS idx_scan_history_user_time
                        ON scan_history(user_id, last_scanned_at);
                """
            )
            await self._connection.commit()

    # Allowlist

    async def add_allowlist_entry(self, user_id: str, domain: str) -> tuple[AllowlistEntry, bool]:
        """Insert a user allowlist entry. Returns (entry, created)."""
        added_at = datetime.now(timezone.utc)
        async with self._lock:
            cursor = await self._connection.execute(
                "INSERT OR IGNORE INTO allowlist_entries (user_id, domain, added_at) VALUES (?, ?, ?)",
                (user_id, domain, added_at.isoformat()),
            )
            created = cursor.rowcount > 0
            await self._connection.commit()

            cursor = await self._connection.execute(
                "SELECT domain, added_at FROM allowlist_entries WHERE user_id = ? AND domain = ?",
                (user_id, domain),
            )
            row = await cursor.fetchone()

        entry = AllowlistEntry(domain=row["domain"], added_at=_parse_ts(row["added_at"]), user_added=True)
        return entry, created

    async def remove_allowlist_entry(self, user_id: str, domain: str) -> bool:
        async with self._lock:
            cursor = await self._connection.execute(
                "DELETE FROM allowlist_entries WHERE user_id = ? AND domain = ?",
                (user_id, domain),
            )
            await self._connection.commit()
            return cursor.rowcount > 0

    async def list_allowlist_entries(self, user_id: str) -> list[AllowlistEntry]:
        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT domain, added_at FROM allowlist_entries WHERE user_id = ? ORDER BY added_at, id",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return [
            AllowlistEntry(domain=row["domain"], added_at=_parse_ts(row["added_at"]), user_added=True)
            for row in rows
        ]

    # History

    async def record_scan(self, user_id: Optional[str], result: ScanResult, history_limit: int = 50) -> None:
        """Upsert a scan into the user's history and keep only the newest entries."""
        user = _user_key(user_id)
        async with self._lock:
            await self._connection.execute(
                """
                INSERT INTO scan_history
                    (user_id, url, verdict, score, safe, reasons, factors, scan_count, last_scanned_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)
                ON CONFLICT (user_id, url) DO UPDATE SET
                    verdict = excluded.verdict,
                    score = excluded.score,
                    safe = excluded.safe,
                    reasons = excluded.reasons,
                    factors = excluded.factors,
                    scan_count = scan_history.scan_count + 1,
                    last_scanned_at = excluded.last_scanned_at
                """,
                (
                    user,
                    result.url,
                    result.verdict.value,
                    result.score,
                    int(result.safe),
                    json.dumps(list(result.reasons)),
                    json.dumps(result.factors.to_dict()),
                    result.timestamp.isoformat(),
                ),
            )
            await self._connection.execute(
                """
                DELETE FROM scan_history
                WHERE user_id = ? AND id NOT IN (
                    SELECT id FROM scan_history
                    WHERE user_id = ?
                    ORDER BY last_scanned_at DESC, id DESC
                    LIMIT ?
                )
                """,
                (user, user, history_limit),
            )
            await self._connection.commit()

    async def list_history(
        self,
        user_id: Optional[str],
        *,
        limit: int = 50,
        safe_only: bool = False,
    ) -> list[HistoryEntry]:
        """Most recently scanned first."""
        query = "SELECT * FROM scan_history WHERE user_id = ?"
        params: list = [_user_key(user_id)]
        if safe_only:
            query += " AND safe = 1"
        query += " ORDER BY last_scanned_at DESC, id DESC LIMIT ?"
        params.append(limit)

        async with self._lock:
            cursor = await self._connection.execute(query, params)
            rows = await cursor.fetchall()

        return [
            HistoryEntry(
                url=row["url"],
                verdict=row["verdict"],
                score=row["score"],
                safe=bool(row["safe"]),
                reasons=json.loads(row["reasons"] or "[]"),
                scan_count=row["scan_count"],
                last_scanned_at=_parse_ts(row["last_scanned_at"]),
            )
            for row in rows
        ]

    async def clear_history(self, user_id: Optional[str]) -> int:
        async with self._lock:
            cursor = await self._connection.execute(
                "DELETE FROM scan_history WHERE user_id = ?",
                (_user_key(user_id),),
            )
            await self._connection.commit()
            return cursor.rowcount

    # Daily stats

    async def increment_daily_stats(self, user_id: Optional[str], day: str, *, threat: bool) -> None:
        async with self._lock:
            await self._connection.execute(
                """
                INSERT INTO daily_stats (user_id, day, links_checked, threats_blocked)
                VALUES (?, ?, 1, ?)
                ON CONFLICT (user_id, day) DO UPDATE SET
                    links_checked = daily_stats.links_checked + 1,
                    threats_blocked = daily_stats.threats_blocked + excluded.threats_blocked
                """,
                (_user_key(user_id), day, int(threat)),
            )
            await self._connection.commit()

    async def get_daily_stats(self, user_id: Optional[str], day: str) -> DailyStats:
        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT links_checked, threats_blocked FROM daily_stats WHERE user_id = ? AND day = ?",
                (_user_key(user_id), day),
            )
            row = await cursor.fetchone()
        if not row:
            return DailyStats(day=day)
        return DailyStats(day=day, links_checked=row["links_checked"], threats_blocked=row["threats_blocked"])
