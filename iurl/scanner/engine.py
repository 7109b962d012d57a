"""Scan orchestration: validate, gate, detect, consult AI, aggregate."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from ..errors import InvalidUrlError
from ..utils.domains import is_http_url
from .ai import AIRiskAdapter
from .allowlist import builtin_entries, is_trusted
from .detectors import DetectorBank
from .models import AIAssessment, AllowlistEntry, ScanResult
from .scoring import ScoreAggregator

logger = logging.getLogger(__name__)


class AllowlistSource(Protocol):
    """Anything that can list the allowlist entries visible to a user."""

    async def get_allowlist(self, user_id: Optional[str] = None) -> list[AllowlistEntry]:  # pragma: no cover - interface
        ...


class UrlScanner:
    """Runs one scan per call; holds no per-scan state."""

    def __init__(
        self,
        *,
        detectors: Optional[DetectorBank] = None,
        aggregator: Optional[ScoreAggregator] = None,
        ai_adapter: Optional[AIRiskAdapter] = None,
        allowlist: Optional[AllowlistSource] = None,
        ai_timeout: float = 10.0,
    ):
        self.detectors = detectors or DetectorBank()
        self.aggregator = aggregator or ScoreAggregator()
        self.ai_adapter = ai_adapter or AIRiskAdapter()
        self.allowlist = allowlist
        self.ai_timeout = ai_timeout

    async def _allowlist_entries(self, user_id: Optional[str]) -> list[AllowlistEntry]:
        if self.allowlist is None:
            return builtin_entries()
        try:
            return await self.allowlist.get_allowlist(user_id)
        except Exception as e:
            logger.warning(f"Allowlist lookup failed, using built-in entries only: {e}")
            return builtin_entries()

    async def _assess(self, url: str) -> AIAssessment:
        """AI estimate bounded by ai_timeout; any failure contributes zero risk."""
        try:
            return await asyncio.wait_for(self.ai_adapter.assess(url), timeout=self.ai_timeout)
        except asyncio.TimeoutError:
            logger.warning("AI analysis exceeded %.1fs for %s; scoring without it", self.ai_timeout, url)
        except Exception as e:
            logger.warning(f"AI analysis failed for {url}: {e}")
        return AIAssessment.empty()

    async def scan(self, url: str, *, user_id: Optional[str] = None, use_ai: bool = True) -> ScanResult:
        """Scan an absolute http(s) URL. Raises InvalidUrlError for anything else."""
        if not is_http_url(url):
            raise InvalidUrlError(f"Not an absolute http(s) URL: {url!r}")

        entries = await self._allowlist_entries(user_id)
        if is_trusted(url, entries):
            logger.info(f"Allowlisted: {url}")
            return self.aggregator.trusted(url)

        if use_ai:
            factors, ai = await asyncio.gather(
                asyncio.to_thread(self.detectors.run, url),
                self._assess(url),
            )
        else:
            factors = await asyncio.to_thread(self.detectors.run, url)
            ai = AIAssessment.empty()

        result = self.aggregator.score(url, factors, ai)
        logger.info(f"Scanned {url}: {result.verdict} (safety {result.score})")
        return result
