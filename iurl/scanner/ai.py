"""
AI risk adapter.

Asks an external AI analysis endpoint for a supplementary risk estimate:

    request:  {"url": "<url>"}
    response: {"riskScore": 0-100, "reason": "...", "threats": ["..."]}

The endpoint is best-effort. Network errors, timeouts, non-2xx responses
(including 429/503 rate limiting) and malformed payloads all produce the
zero assessment, so a scan never waits on or fails because of the AI.
"""

import asyncio
import json
import logging
import math
import re
import time
from typing import Any, Dict, Optional

import aiohttp

from .models import AIAssessment

logger = logging.getLogger(__name__)

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_assessment(payload: Any) -> AIAssessment:
    """Coerce an endpoint payload into an AIAssessment (ValueError if unusable)."""
    if isinstance(payload, str):
        match = JSON_OBJECT_RE.search(payload)
        if not match:
            raise ValueError("no JSON object in AI response")
        payload = json.loads(match.group(0))
    if not isinstance(payload, dict):
        raise ValueError(f"unexpected AI payload type: {type(payload).__name__}")

    raw_score = payload.get("riskScore", 0)
    if isinstance(raw_score, bool) or not isinstance(raw_score, (int, float)):
        raise ValueError(f"riskScore is not a number: {raw_score!r}")
    if not math.isfinite(raw_score):
        raise ValueError(f"riskScore is not finite: {raw_score!r}")
    risk_score = max(0.0, min(100.0, float(raw_score)))

    reason = payload.get("reason") or ""
    if not isinstance(reason, str):
        reason = str(reason)

    threats = payload.get("threats") or []
    if not isinstance(threats, list):
        threats = []

    return AIAssessment(
        risk_score=risk_score,
        reason=reason.strip(),
        threats=tuple(t.strip() for t in threats if isinstance(t, str) and t.strip()),
    )


class AIRiskAdapter:
    """
    Client for the AI analysis endpoint.

    Disabled (always returns the zero assessment without a request) when no
    endpoint is configured. Successful assessments are cached per URL.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        cache_ttl_seconds: int = 3600,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.cache_ttl_seconds = cache_ttl_seconds

        # url -> (assessment, monotonic timestamp)
        self._cache: Dict[str, tuple[AIAssessment, float]] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint)

    def _get_cached(self, url: str) -> Optional[AIAssessment]:
        cached = self._cache.get(url)
        if not cached:
            return None
        assessment, stored_at = cached
        if time.monotonic() - stored_at < self.cache_ttl_seconds:
            return assessment
        del self._cache[url]
        return None

    def _set_cached(self, url: str, assessment: AIAssessment) -> None:
        if self.cache_ttl_seconds > 0:
            self._cache[url] = (assessment, time.monotonic())

    async def assess(self, url: str) -> AIAssessment:
        """Return the AI risk estimate for url, or the zero assessment on any failure."""
        if not self.enabled:
            return AIAssessment.empty()

        cached = self._get_cached(url)
        if cached is not None:
            return cached

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.endpoint, headers=headers, json={"url": url}) as resp:
                    if resp.status in (429, 503):
                        logger.warning(
                            "AI endpoint rate limited (HTTP %s, Retry-After=%s); continuing without AI",
                            resp.status,
                            resp.headers.get("Retry-After", "?"),
                        )
                        return AIAssessment.empty()
                    if not 200 <= resp.status < 300:
                        logger.warning("AI endpoint returned HTTP %s for %s", resp.status, url)
                        return AIAssessment.empty()
                    body = await resp.text()

            try:
                payload = json.loads(body)
            except ValueError:
                payload = body
            assessment = parse_assessment(payload)

        except asyncio.TimeoutError:
            logger.debug(f"AI analysis timeout for {url}")
            return AIAssessment.empty()
        except (aiohttp.ClientError, ValueError) as e:
            logger.debug(f"AI analysis error for {url}: {e}")
            return AIAssessment.empty()

        self._set_cached(url, assessment)
        logger.debug(f"AI analysis: {url} = {assessment.risk_score:.0f} ({assessment.reason})")
        return assessment
