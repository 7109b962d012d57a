"""Score aggregation: weighted detector danger blended with AI risk."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional

from .models import AIAssessment, ScanFactors, ScanResult, Verdict

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Mapping[str, int] = MappingProxyType(
    {
        "allowlist": 100,
        "threat_feed": 30,
        "domain_similarity": 15,
        "certificate": 10,
        "redirects": 10,
        "entropy": 10,
        "behavior": 25,
        "c2": 20,
    }
)

CLEAN_MESSAGE = "No threats detected. URL appears safe"
ALLOWLIST_MESSAGE = "Domain is in allowlist"
NO_THREATS_MESSAGE = "No threats detected"

# Contribution a detector must exceed before it is cited as a reason.
REASON_THRESHOLDS: Mapping[str, float] = MappingProxyType(
    {
        "threat_feed": 5,
        "domain_similarity": 3,
        "certificate": 2,
        "redirects": 2,
        "entropy": 2,
        "behavior": 5,
        "c2": 4,
    }
)

DETECTOR_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "threat_feed": "threat feed",
        "domain_similarity": "domain similarity",
        "certificate": "connection security",
        "redirects": "redirect",
        "entropy": "URL randomness",
        "behavior": "behavior",
        "c2": "command-and-control",
    }
)


@dataclass(frozen=True)
class ScoringConfig:
    """Weights, thresholds and blend ratio. Built once, never mutated."""

    weights: Mapping[str, int] = field(default_factory=lambda: DEFAULT_WEIGHTS)
    clean_threshold: float = 10
    malicious_threshold: float = 60
    detector_share: float = 0.6
    ai_share: float = 0.4

    def __post_init__(self):
        if any(w <= 0 for w in self.weights.values()):
            raise ValueError("weights must be positive")
        if not 0 <= self.clean_threshold < self.malicious_threshold <= 100:
            raise ValueError("thresholds must satisfy 0 <= clean < malicious <= 100")
        # Freeze caller-supplied dicts too.
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))

    @property
    def detector_weight_total(self) -> int:
        return sum(w for name, w in self.weights.items() if name != "allowlist")

    def verdict_for(self, danger: float) -> Verdict:
        if danger <= self.clean_threshold:
            return Verdict.CLEAN
        if danger >= self.malicious_threshold:
            return Verdict.MALICIOUS
        return Verdict.SUSPICIOUS


class ScoreAggregator:
    """Combines detector sub-scores and the AI estimate into a ScanResult."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def contributions(self, factors: ScanFactors) -> dict[str, float]:
        weights = self.config.weights
        return {
            name: weights[name] * (value / 100)
            for name, value in factors.detector_scores().items()
        }

    def detector_danger(self, factors: ScanFactors) -> float:
        total = sum(self.contributions(factors).values())
        return min(100.0, 100 * total / self.config.detector_weight_total)

    def danger_score(self, factors: ScanFactors, ai: AIAssessment) -> float:
        return (
            self.detector_danger(factors) * self.config.detector_share
            + ai.risk_score * self.config.ai_share
        )

    def score(
        self,
        url: str,
        factors: ScanFactors,
        ai: Optional[AIAssessment] = None,
        *,
        timestamp: Optional[datetime] = None,
    ) -> ScanResult:
        ai = ai or AIAssessment.empty()
        danger = self.danger_score(factors, ai)
        verdict = self.config.verdict_for(danger)
        reasons = self._reasons(verdict, factors, ai)

        logger.debug("Scored %s: danger=%.2f verdict=%s", url, danger, verdict)
        return ScanResult(
            url=url,
            safe=verdict is Verdict.CLEAN,
            score=_safety_score(danger),
            verdict=verdict,
            timestamp=timestamp or datetime.now(timezone.utc),
            reasons=tuple(reasons),
            factors=factors,
        )

    def trusted(self, url: str, *, timestamp: Optional[datetime] = None) -> ScanResult:
        """Result for an allowlisted URL; no detector ran."""
        return ScanResult(
            url=url,
            safe=True,
            score=100,
            verdict=Verdict.CLEAN,
            timestamp=timestamp or datetime.now(timezone.utc),
            reasons=(ALLOWLIST_MESSAGE,),
            factors=ScanFactors.trusted(),
        )

    def _reasons(self, verdict: Verdict, factors: ScanFactors, ai: AIAssessment) -> list[str]:
        if verdict is Verdict.CLEAN:
            reasons = [CLEAN_MESSAGE]
            if ai.reason:
                reasons.append(f"AI analysis: {ai.reason}")
            return reasons

        reasons: list[str] = []
        if ai.risk_score > 30 and ai.reason:
            reasons.append(f"AI analysis: {ai.reason}")
        for threat in ai.threats[:2]:
            reasons.append(f"AI detected: {threat}")

        contributions = self.contributions(factors)
        for name, contribution in contributions.items():
            if contribution > REASON_THRESHOLDS[name]:
                reasons.append(_detector_message(name, getattr(factors, name)))

        if not reasons:
            reasons.append(self._fallback_reason(contributions, ai))
        return reasons

    @staticmethod
    def _fallback_reason(contributions: dict[str, float], ai: AIAssessment) -> str:
        """Name the strongest signal when nothing crossed its reason threshold."""
        name, top = max(contributions.items(), key=lambda item: item[1])
        if top > 0:
            return f"Elevated risk from {DETECTOR_LABELS[name]} signals"
        if ai.risk_score > 0:
            return "Elevated risk from AI assessment"
        return NO_THREATS_MESSAGE


def _safety_score(danger: float) -> int:
    """100 - danger, rounded half up and clamped to 0-100."""
    return max(0, min(100, math.floor(100 - danger + 0.5)))


def _detector_message(name: str, sub_score: int) -> str:
    if name == "threat_feed":
        if sub_score >= 80:
            return "Known malicious patterns detected"
        return "Suspicious domain characteristics"
    if name == "domain_similarity":
        return "Domain resembles trusted site (possible typosquatting)"
    if name == "certificate":
        if sub_score >= 100:
            return "Insecure connection (HTTP) for sensitive operations"
        return "Connection is not fully encrypted (HTTP or mixed content)"
    if name == "redirects":
        return "URL shortener detected (may hide destination)"
    if name == "entropy":
        return "Unusual URL structure with random characters"
    if name == "behavior":
        if sub_score >= 90:
            return "Malicious file download detected"
        if sub_score >= 70:
            return "Suspicious behavior patterns (scam/phishing indicators)"
        return "Questionable content indicators"
    return "Command-and-control indicators (unusual port or beacon path)"
