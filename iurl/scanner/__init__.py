"""URL risk scoring engine."""

from .ai import AIRiskAdapter
from .allowlist import BUILTIN_ALLOWLIST, is_trusted
from .detectors import DetectorBank
from .engine import UrlScanner
from .models import AIAssessment, AllowlistEntry, ScanFactors, ScanResult, Verdict
from .scoring import ScoreAggregator, ScoringConfig

__all__ = [
    "AIRiskAdapter",
    "AIAssessment",
    "AllowlistEntry",
    "BUILTIN_ALLOWLIST",
    "DetectorBank",
    "ScanFactors",
    "ScanResult",
    "ScoreAggregator",
    "ScoringConfig",
    "UrlScanner",
    "Verdict",
    "is_trusted",
]
