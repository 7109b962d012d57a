"""Tests for score aggregation."""

from datetime import datetime, timezone

import pytest

from iurl.scanner.models import AIAssessment, ScanFactors, Verdict
from iurl.scanner.scoring import (
    ALLOWLIST_MESSAGE,
    CLEAN_MESSAGE,
    NO_THREATS_MESSAGE,
    ScoreAggregator,
    ScoringConfig,
)


@pytest.fixture
def aggregator():
    return ScoreAggregator()


class TestScoringConfig:
    def test_default_weight_total_excludes_allowlist(self):
        """The allowlist flag carries no weight in the detector total."""
        assert ScoringConfig().detector_weight_total == 120

    @pytest.mark.parametrize(
        ("danger", "verdict"),
        [
            (0, Verdict.CLEAN),
            (10, Verdict.CLEAN),
            (10.001, Verdict.SUSPICIOUS),
            (59.999, Verdict.SUSPICIOUS),
            (60, Verdict.MALICIOUS),
            (100, Verdict.MALICIOUS),
        ],
    )
    def test_verdict_boundaries(self, danger, verdict):
        """Clean is inclusive at 10, malicious inclusive at 60."""
        assert ScoringConfig().verdict_for(danger) is verdict

    def test_weights_are_read_only(self):
        """Weights cannot be changed after construction."""
        config = ScoringConfig(weights={**ScoringConfig().weights})
        with pytest.raises(TypeError):
            config.weights["c2"] = 1

    def test_rejects_bad_thresholds(self):
        """Inverted thresholds and non-positive weights are refused."""
        with pytest.raises(ValueError):
            ScoringConfig(clean_threshold=70, malicious_threshold=60)
        with pytest.raises(ValueError):
            ScoringConfig(weights={**ScoringConfig().weights, "c2": 0})


class TestScoreAggregator:
    """Weighted danger, blend, verdict and reasons."""

    def test_all_zero_is_clean(self, aggregator):
        """No signals at all gives a perfect safety score."""
        result = aggregator.score("https://example.com", ScanFactors())
        assert result.score == 100
        assert result.verdict is Verdict.CLEAN
        assert result.safe
        assert result.reasons == (CLEAN_MESSAGE,)

    def test_contribution_and_danger(self, aggregator):
        """A maxed behavior score contributes its full weight of 25."""
        factors = ScanFactors(behavior=100)
        assert aggregator.contributions(factors)["behavior"] == 25
        assert aggregator.detector_danger(factors) == pytest.approx(100 * 25 / 120)
        assert aggregator.danger_score(factors, AIAssessment.empty()) == pytest.approx(12.5)

    def test_executable_download_is_suspicious_without_ai(self, aggregator):
        """An executable download alone lands just past the clean threshold."""
        result = aggregator.score("https://example.com/file.exe", ScanFactors(behavior=100))
        assert result.verdict is Verdict.SUSPICIOUS
        assert not result.safe
        assert result.score == 88
        assert result.reasons == ("Malicious file download detected",)

    def test_shortener_alone_stays_clean(self, aggregator):
        """A URL shortener adds danger 3, well under the clean threshold."""
        result = aggregator.score("https://bit.ly/abc123", ScanFactors(redirects=60))
        assert aggregator.danger_score(result.factors, AIAssessment.empty()) == pytest.approx(3.0)
        assert result.verdict is Verdict.CLEAN
        assert result.score == 97

    def test_all_detectors_maxed_is_malicious(self, aggregator):
        """Without AI input the detectors alone can reach danger 60."""
        factors = ScanFactors(
            threat_feed=100,
            domain_similarity=100,
            certificate=100,
            redirects=100,
            entropy=100,
            behavior=100,
            c2=100,
        )
        result = aggregator.score("http://x.tk/gate.php", factors)
        assert result.verdict is Verdict.MALICIOUS
        assert result.score == 40

    def test_half_scores_round_up(self, aggregator):
        """A safety score of x.5 rounds up, never to the even neighbour."""
        result = aggregator.score("https://example.com:8080/file.exe", ScanFactors(behavior=100, c2=30))
        assert aggregator.danger_score(result.factors, AIAssessment.empty()) == pytest.approx(15.5)
        assert result.score == 85

        result = aggregator.score("https://example.com", ScanFactors(), AIAssessment(risk_score=38.75))
        assert result.score == 85

    def test_typosquat_login_page(self, aggregator):
        """Look-alike domain plus a login phrase is flagged."""
        result = aggregator.score("https://g00gle.com/login", ScanFactors(threat_feed=80, domain_similarity=75))
        assert result.verdict is Verdict.SUSPICIOUS
        assert result.score == 82
        assert result.reasons == (
            "Known malicious patterns detected",
            "Domain resembles trusted site (possible typosquatting)",
        )

    def test_ai_blend(self, aggregator):
        """AI reason and at most two AI threats come before detector reasons."""
        ai = AIAssessment(risk_score=90, reason="Credential harvesting page", threats=("phishing", "brand abuse", "extra"))
        result = aggregator.score("https://g00gle.com/login", ScanFactors(domain_similarity=75), ai)
        # 0.6 * 9.375 + 0.4 * 90
        assert result.verdict is Verdict.SUSPICIOUS
        assert result.score == 58
        assert result.reasons == (
            "AI analysis: Credential harvesting page",
            "AI detected: phishing",
            "AI detected: brand abuse",
            "Domain resembles trusted site (possible typosquatting)",
        )

    def test_low_ai_reason_not_cited_when_flagged(self, aggregator):
        """AI reasons at risk 30 or below are left out of flagged results."""
        ai = AIAssessment(risk_score=20, reason="Looks fine")
        result = aggregator.score("https://example.com/file.exe", ScanFactors(behavior=100), ai)
        assert result.verdict is Verdict.SUSPICIOUS
        assert "AI analysis: Looks fine" not in result.reasons

    def test_clean_keeps_ai_reason(self, aggregator):
        """Clean results still echo whatever the AI said."""
        ai = AIAssessment(risk_score=5, reason="Well known site")
        result = aggregator.score("https://example.com", ScanFactors(), ai)
        assert result.reasons == (CLEAN_MESSAGE, "AI analysis: Well known site")

    def test_fallback_names_strongest_detector(self, aggregator):
        """Flagged results below every reason threshold cite the top detector."""
        # c2 contributes 4, below its threshold; AI pushes danger to 12.
        result = aggregator.score("https://example.com:8080/", ScanFactors(c2=20), AIAssessment(risk_score=25))
        assert result.verdict is Verdict.SUSPICIOUS
        assert result.reasons == ("Elevated risk from command-and-control signals",)

    def test_fallback_names_ai_when_detectors_silent(self, aggregator):
        """With no detector signal at all the AI is named instead."""
        result = aggregator.score("https://example.com", ScanFactors(), AIAssessment(risk_score=30))
        assert result.verdict is Verdict.SUSPICIOUS
        assert result.reasons == ("Elevated risk from AI assessment",)

    def test_tiered_messages(self, aggregator):
        """Message wording follows the raw sub-score tier."""
        result = aggregator.score(
            "http://example.xyz/",
            ScanFactors(threat_feed=75, certificate=40, behavior=70),
            AIAssessment(risk_score=50),
        )
        assert result.reasons == (
            "Suspicious domain characteristics",
            "Connection is not fully encrypted (HTTP or mixed content)",
            "Suspicious behavior patterns (scam/phishing indicators)",
        )

    def test_trusted(self, aggregator):
        """Allowlisted URLs skip scoring and carry the allowlist flag."""
        result = aggregator.trusted("https://mail.google.com/")
        assert result.score == 100
        assert result.verdict is Verdict.CLEAN
        assert result.factors == ScanFactors(allowlist=1)
        assert result.reasons == (ALLOWLIST_MESSAGE,)

    def test_custom_thresholds(self):
        """Thresholds from the config drive the verdict."""
        aggregator = ScoreAggregator(ScoringConfig(clean_threshold=1, malicious_threshold=12))
        result = aggregator.score("https://example.com/file.exe", ScanFactors(behavior=100))
        assert result.verdict is Verdict.MALICIOUS

    def test_result_serialization(self, aggregator):
        """to_dict uses camelCase factor names and ISO timestamps."""
        ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        result = aggregator.score("https://bit.ly/x", ScanFactors(redirects=60), timestamp=ts)
        payload = result.to_dict()
        assert payload["verdict"] == "clean"
        assert payload["timestamp"] == "2024-05-01T12:00:00+00:00"
        assert payload["factors"]["redirects"] == 60
        assert payload["factors"]["threatFeed"] == 0
        assert payload["factors"]["domainSimilarity"] == 0


def test_no_threats_message_constant():
    assert NO_THREATS_MESSAGE == "No threats detected"
