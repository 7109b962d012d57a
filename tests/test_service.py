"""Tests for the scan service."""

from datetime import datetime, timezone

import pytest

from iurl.errors import InvalidUrlError
from iurl.pipeline import ScanService
from iurl.scanner.engine import UrlScanner
from iurl.scanner.models import Verdict


class _BrokenDatabase:
    async def record_scan(self, *args, **kwargs):
        raise OSError("disk full")

    async def increment_daily_stats(self, *args, **kwargs):
        raise OSError("disk full")


@pytest.fixture
def scanner(allowlist_store, static_ai):
    return UrlScanner(ai_adapter=static_ai(), allowlist=allowlist_store)


async def test_scan_records_history_and_stats(scanner, database):
    service = ScanService(scanner, database)

    await service.scan("https://example.com", user_id="alice")
    result = await service.scan("https://example.com/file.exe", user_id="alice")

    assert result.verdict is Verdict.SUSPICIOUS
    history = await database.list_history("alice")
    assert [h.url for h in history] == ["https://example.com/file.exe", "https://example.com"]

    day = datetime.now(timezone.utc).date().isoformat()
    stats = await database.get_daily_stats("alice", day)
    assert (stats.links_checked, stats.threats_blocked) == (2, 1)


async def test_history_limit_applied(scanner, database):
    service = ScanService(scanner, database, history_limit=1)
    await service.scan("https://example.com")
    await service.scan("https://example.org")
    assert [h.url for h in await database.list_history(None)] == ["https://example.org"]


async def test_storage_failure_does_not_fail_scan(scanner):
    service = ScanService(scanner, _BrokenDatabase())
    result = await service.scan("https://example.com/file.exe")
    assert result.score == 88


async def test_invalid_url_is_not_recorded(scanner, database):
    service = ScanService(scanner, database)
    with pytest.raises(InvalidUrlError):
        await service.scan("not a url")
    assert await database.list_history(None) == []
