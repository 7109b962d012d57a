"""URL pattern detectors.

Each detector inspects only the URL string and its parsed components and
returns a 0-100 suspicion sub-score for one threat dimension. Detectors never
raise: a URL that fails to parse yields the detector's documented fallback.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Iterable
from urllib.parse import unquote, unquote_plus

from rapidfuzz.distance import Levenshtein

from ..utils.domains import ParseError, ParsedUrl, hostname_matches, parse_url, registrable_label
from .models import ScanFactors

logger = logging.getLogger(__name__)


MALWARE_KEYWORDS = (
    "malware",
    "virus",
    "trojan",
    "keylogger",
    "rootkit",
    "spyware",
    "ransomware",
    "botnet",
)

PHISHING_PATTERNS = (
    "verify-account",
    "suspended-account",
    "confirm-identity",
    "urgent-action",
    "password-reset",
    "account-locked",
    "update-billing",
    "unlock-account",
    "login",
    "log-in",
    "signin",
    "sign-in",
)

SUSPICIOUS_TLDS = (
    "tk",
    "ml",
    "ga",
    "cf",
    "gq",
    "xyz",
    "top",
    "click",
    "download",
    "zip",
    "mov",
    "work",
    "loan",
    "icu",
    "buzz",
    "country",
)

BRANDS = (
    "google",
    "facebook",
    "paypal",
    "amazon",
    "microsoft",
    "apple",
    "netflix",
    "instagram",
    "twitter",
    "linkedin",
    "gmail",
    "yahoo",
    "outlook",
    "github",
    "spotify",
    "reddit",
    "dropbox",
    "whatsapp",
    "tiktok",
    "youtube",
    "ebay",
    "chase",
    "wellsfargo",
    "bankofamerica",
    "citibank",
    "coinbase",
    "binance",
    "adobe",
    "icloud",
    "office365",
    "steam",
    "discord",
)

SHORTENERS = (
    "bit.ly",
    "tinyurl.com",
    "t.co",
    "goo.gl",
    "ow.ly",
    "is.gd",
    "short.link",
    "tiny.cc",
    "buff.ly",
    "rebrand.ly",
    "cutt.ly",
    "shorturl.at",
    "rb.gy",
    "t.ly",
    "bl.ink",
    "s.id",
    "v.gd",
)

EXECUTABLE_EXTENSIONS = (".exe", ".scr", ".bat", ".pif", ".vbs", ".cmd", ".msi", ".jar")
FORCED_DOWNLOAD_HINTS = ("force", "auto", "direct")
SCAM_KEYWORDS = (
    "winner",
    "prize",
    "lottery",
    "free-iphone",
    "free-money",
    "get-rich",
    "urgent",
    "expire-today",
    "act-now",
    "claim-reward",
)
NSFW_KEYWORDS = (
    "porn",
    "xxx",
    "adult",
    "casino",
    "gambling",
    "betting",
    "torrent",
    "warez",
    "crack",
)
SENSITIVE_PARAM_TERMS = ("password", "pwd", "pass", "token", "auth", "key", "secret", "sessionid")

PROXY_PORTS = (8080, 8443)
C2_PATH_FRAGMENTS = (
    "/gate.php",
    "/beacon",
    "/c2",
    "/panel/gate",
    "/bot.php",
    "/cmd.php",
    "/tasks.php",
    "/check_in",
)
SCRIPT_EXTENSIONS = (".ps1", ".sh", ".dat")

# Digits commonly swapped in for look-alike letters.
LOOKALIKE_DIGITS = {
    "0": "o",
    "1": "li",
    "3": "e",
    "4": "a",
    "5": "s",
    "7": "t",
    "8": "b",
}

SIMILARITY_THRESHOLD = 0.8
SENSITIVE_PAGE_RE = re.compile(r"login|payment|bank|signin")
RANDOM_PATH_RUN_RE = re.compile(r"[a-z0-9]{30,}")
RANDOM_HOST_RUN_RE = re.compile(r"[a-z0-9]{40,}")
BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    return any(needle in text for needle in needles)


def detect_threat_feed(url: str, *, suspicious_tlds: Iterable[str] = SUSPICIOUS_TLDS) -> int:
    """Malware keywords (100) > credential-phishing phrases (80) > abused TLD (75)."""
    lowered = url.lower()
    if _contains_any(lowered, MALWARE_KEYWORDS):
        return 100
    if _contains_any(lowered, PHISHING_PATTERNS):
        return 80

    try:
        host = parse_url(url).hostname
    except ParseError:
        return 0
    if any(host.endswith("." + tld.lower().lstrip(".")) for tld in suspicious_tlds):
        return 75
    return 0


def _is_lookalike(label: str, brand: str) -> bool:
    """True when label spells brand with digits standing in for letters."""
    if len(label) != len(brand) or label == brand:
        return False
    swapped = False
    for have, want in zip(label, brand):
        if have == want:
            continue
        if want not in LOOKALIKE_DIGITS.get(have, ""):
            return False
        swapped = True
    return swapped


def _brand_distance(label: str, brand: str) -> int:
    if label in brand and len(label) < len(brand):
        # Truncated brand names ("paypa", "goog") count as two edits away.
        return 2
    if _is_lookalike(label, brand):
        return 1
    return Levenshtein.distance(label, brand)


def detect_domain_similarity(url: str, *, brands: Iterable[str] = BRANDS) -> int:
    """Typosquatting: leading host label within a small edit distance of a brand."""
    try:
        parsed = parse_url(url)
    except ParseError:
        return 0
    if parsed.is_ip:
        return 0

    label = registrable_label(parsed.hostname)
    if not label:
        return 0

    min_distance = None
    for brand in brands:
        brand = brand.lower()
        if not brand or label == brand:
            continue
        distance = _brand_distance(label, brand)
        similarity = 1 - distance / max(len(label), len(brand))
        if similarity > SIMILARITY_THRESHOLD:
            min_distance = distance if min_distance is None else min(min_distance, distance)

    if min_distance is None:
        return 0
    return min(100, round(150 / (min_distance + 1)))


def detect_certificate(url: str) -> int:
    """
    Transport heuristic on the URL string only.

    No TLS handshake or certificate validation happens here: plain HTTP on a
    sensitive page scores 100, other HTTP 40, and HTTPS pages embedding an
    ``http://`` link (mixed content) 40. URLs that fail to parse score 50.
    """
    try:
        parsed = parse_url(url)
    except ParseError:
        return 50

    lowered = url.lower()
    if parsed.scheme == "http":
        if SENSITIVE_PAGE_RE.search(lowered):
            return 100
        return 40
    if parsed.scheme == "https" and "http://" in lowered:
        return 40
    return 0


def detect_redirects(url: str, *, shorteners: Iterable[str] = SHORTENERS) -> int:
    """Known URL shorteners hide the real destination."""
    try:
        host = parse_url(url).hostname
    except ParseError:
        return 0
    if any(hostname_matches(host, shortener.lower()) for shortener in shorteners):
        return 60
    return 0


def shannon_entropy(data: str) -> float:
    """Shannon entropy (bits per character)."""
    if not data:
        return 0.0
    total = len(data)
    return -sum((count / total) * math.log2(count / total) for count in Counter(data).values())


def detect_entropy(url: str) -> int:
    """Long random-looking runs or high character entropy."""
    try:
        parsed = parse_url(url)
    except ParseError:
        return 0

    path_and_query = parsed.path_and_query
    if RANDOM_PATH_RUN_RE.search(path_and_query) or RANDOM_HOST_RUN_RE.search(parsed.hostname):
        return 90

    entropy = shannon_entropy(parsed.hostname + path_and_query)
    if entropy > 4.5:
        return 75
    if entropy > 4.0:
        return 40
    return 0


def _split_query(query: str) -> list[tuple[str, str]]:
    """Split a raw query into (name, value) pairs without decoding."""
    pairs = []
    for chunk in query.split("&"):
        if not chunk:
            continue
        name, _, value = chunk.partition("=")
        pairs.append((name, value))
    return pairs


def _strict_unquote(value: str) -> str:
    """Percent-decode, raising ValueError on malformed escapes or invalid UTF-8."""
    if BAD_ESCAPE_RE.search(value):
        raise ValueError(f"malformed percent-encoding: {value!r}")
    return unquote(value.replace("+", " "), errors="strict")


def _inspect_parameters(parsed: ParsedUrl) -> int:
    if parsed.is_ip:
        return 90

    pairs = _split_query(parsed.query)
    if len(pairs) > 10 and len(parsed.query) > 200:
        return 60

    names = [unquote_plus(name).lower() for name, _ in pairs]
    if any(term in name for name in names for term in SENSITIVE_PARAM_TERMS):
        return 75

    values = [unquote_plus(value).lower() for _, value in pairs]
    if any("http://" in value or "https://" in value for value in values):
        return 80

    decode_failed = False
    for _, raw_value in pairs:
        if "%" not in raw_value:
            continue
        try:
            decoded = _strict_unquote(raw_value).lower()
        except ValueError:
            decode_failed = True
            continue
        if "<script" in decoded or "javascript:" in decoded:
            return 100
    if decode_failed:
        return 60
    return 0


def detect_behavior(url: str) -> int:
    """Executable downloads, scam/NSFW keywords, then suspicious query parameters."""
    lowered = url.lower()
    resource = lowered.split("#", 1)[0].split("?", 1)[0]
    if resource.endswith(EXECUTABLE_EXTENSIONS):
        return 100
    if "download" in lowered and _contains_any(lowered, FORCED_DOWNLOAD_HINTS):
        return 90
    if _contains_any(lowered, SCAM_KEYWORDS):
        return 85
    if _contains_any(lowered, NSFW_KEYWORDS):
        return 70

    try:
        parsed = parse_url(url)
    except ParseError:
        return 50
    return _inspect_parameters(parsed)


def detect_c2(url: str) -> int:
    """Command-and-control heuristics: odd ports, beacon paths, script payloads."""
    try:
        parsed = parse_url(url)
    except ParseError:
        return 0

    port = parsed.port
    if port in PROXY_PORTS:
        return 30
    if port is not None and (1024 < port < 10000 or port > 40000):
        return 80

    path = parsed.path.lower()
    if _contains_any(path, C2_PATH_FRAGMENTS):
        return 90
    if path.endswith(SCRIPT_EXTENSIONS):
        return 100
    return 0


class DetectorBank:
    """Runs every detector against a URL."""

    def __init__(
        self,
        *,
        suspicious_tlds: Iterable[str] | None = None,
        brands: Iterable[str] | None = None,
        shorteners: Iterable[str] | None = None,
    ):
        self.suspicious_tlds = tuple(suspicious_tlds or SUSPICIOUS_TLDS)
        self.brands = tuple(b.lower() for b in (brands or BRANDS))
        self.shorteners = tuple(s.lower() for s in (shorteners or SHORTENERS))

    def run(self, url: str) -> ScanFactors:
        factors = ScanFactors(
            threat_feed=detect_threat_feed(url, suspicious_tlds=self.suspicious_tlds),
            domain_similarity=detect_domain_similarity(url, brands=self.brands),
            certificate=detect_certificate(url),
            redirects=detect_redirects(url, shorteners=self.shorteners),
            entropy=detect_entropy(url),
            behavior=detect_behavior(url),
            c2=detect_c2(url),
        )
        logger.debug("Detector scores for %s: %s", url, factors)
        return factors
