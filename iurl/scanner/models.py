"""Scan data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Optional


class Verdict(str, Enum):
    """Tri-state scan verdict."""

    CLEAN = "clean"
    SUSPICIOUS = "suspicious"
    MALICIOUS = "malicious"

    def __str__(self) -> str:
        return self.value


# Serialized (external) name for each ScanFactors field.
FACTOR_KEYS = {
    "allowlist": "allowlist",
    "threat_feed": "threatFeed",
    "domain_similarity": "domainSimilarity",
    "certificate": "certificate",
    "redirects": "redirects",
    "entropy": "entropy",
    "behavior": "behavior",
    "c2": "c2",
}


@dataclass(frozen=True)
class ScanFactors:
    """Per-detector sub-scores (0-100). ``allowlist`` is a 0/1 flag."""

    allowlist: int = 0
    threat_feed: int = 0
    domain_similarity: int = 0
    certificate: int = 0
    redirects: int = 0
    entropy: int = 0
    behavior: int = 0
    c2: int = 0

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not 0 <= value <= 100:
                raise ValueError(f"{f.name} must be within 0..100, got {value}")
        if self.allowlist not in (0, 1):
            raise ValueError("allowlist is a 0/1 flag")

    @classmethod
    def trusted(cls) -> "ScanFactors":
        return cls(allowlist=1)

    def detector_scores(self) -> dict[str, int]:
        """Sub-scores of every detector except the allowlist flag."""
        return {name: value for name, value in asdict(self).items() if name != "allowlist"}

    def to_dict(self) -> dict:
        return {FACTOR_KEYS[name]: value for name, value in asdict(self).items()}


@dataclass(frozen=True)
class AIAssessment:
    """Supplementary risk estimate from the AI analysis endpoint."""

    risk_score: float = 0.0
    reason: str = ""
    threats: tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> "AIAssessment":
        return cls()

    def to_dict(self) -> dict:
        return {"riskScore": self.risk_score, "reason": self.reason, "threats": list(self.threats)}


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one scan."""

    url: str
    safe: bool
    score: int  # safety score, higher = safer
    verdict: Verdict
    timestamp: datetime
    reasons: tuple[str, ...]
    factors: ScanFactors

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "safe": self.safe,
            "score": self.score,
            "verdict": self.verdict.value,
            "timestamp": self.timestamp.isoformat(),
            "reasons": list(self.reasons),
            "factors": self.factors.to_dict(),
        }


@dataclass(frozen=True)
class AllowlistEntry:
    """A trusted domain. Built-ins have no ``added_at``."""

    domain: str
    added_at: Optional[datetime] = None
    user_added: bool = False

    def to_dict(self) -> dict:
        added_ms = int(self.added_at.timestamp() * 1000) if self.added_at else 0
        return {"domain": self.domain, "addedAt": added_ms, "userAdded": self.user_added}


@dataclass
class HistoryEntry:
    """A scanned URL as recorded in a user's history."""

    url: str
    verdict: str
    score: int
    safe: bool
    reasons: list[str] = field(default_factory=list)
    scan_count: int = 1
    last_scanned_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "verdict": self.verdict,
            "score": self.score,
            "safe": self.safe,
            "reasons": self.reasons,
            "count": self.scan_count,
            "timestamp": self.last_scanned_at.isoformat() if self.last_scanned_at else None,
        }


@dataclass
class DailyStats:
    """Per-day scan counters."""

    day: str
    links_checked: int = 0
    threats_blocked: int = 0

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "linksChecked": self.links_checked,
            "threatsBlocked": self.threats_blocked,
        }
