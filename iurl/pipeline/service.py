"""Scan service: runs a scan and records it for the caller."""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Optional

from ..scanner.engine import UrlScanner
from ..scanner.models import ScanResult
from ..storage.database import Database

logger = logging.getLogger(__name__)


class ScanService:
    """Wraps UrlScanner with history and daily statistics bookkeeping."""

    def __init__(self, scanner: UrlScanner, database: Database, history_limit: int = 50):
        self.scanner = scanner
        self.database = database
        self.history_limit = history_limit

    async def scan(self, url: str, user_id: Optional[str] = None, use_ai: bool = True) -> ScanResult:
        """Scan a URL. Raises InvalidUrlError for non-http(s) input; storage errors are only logged."""
        result = await self.scanner.scan(url, user_id=user_id, use_ai=use_ai)
        await self._record(result, user_id)
        return result

    async def _record(self, result: ScanResult, user_id: Optional[str]) -> None:
        day = result.timestamp.astimezone(timezone.utc).date().isoformat()
        try:
            await self.database.record_scan(user_id, result, history_limit=self.history_limit)
            await self.database.increment_daily_stats(
                user_id,
                day,
                threat=not result.safe,
            )
        except Exception as e:
            logger.error(f"Failed to record scan of {result.url}: {e}")
