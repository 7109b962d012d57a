"""Configuration management for iurl."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from .scanner.scoring import ScoringConfig
from .storage.site_allowlist import SiteAllowlist

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """iurl configuration."""

    # HTTP API
    api_host: str = "127.0.0.1"
    api_port: int = 8080
    # Bearer token -> user id
    api_tokens: dict[str, str] = field(default_factory=dict)
    # Peers allowed to set X-Forwarded-For (reverse proxies)
    api_trusted_proxies: list[str] = field(default_factory=list)

    # AI risk endpoint (optional)
    ai_endpoint: str = ""
    ai_api_key: str = ""
    ai_timeout: float = 10.0
    ai_cache_ttl_seconds: int = 3600

    # Per-client scan rate limit
    scan_rate_limit_per_minute: int = 10
    scan_rate_limit_burst: int = 10

    # Scan history kept per user
    history_limit: int = 50

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    config_dir: Path = field(default_factory=lambda: Path("./config"))

    # Loaded from config/allowlist.txt
    extra_allowlist: list[str] = field(default_factory=list)

    # Detector tables from config/heuristics.yaml; None keeps the built-in tables
    brands: Optional[list[str]] = None
    suspicious_tlds: Optional[list[str]] = None
    shorteners: Optional[list[str]] = None

    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    def __post_init__(self):
        """Ensure paths exist and load lists."""
        self.data_dir = Path(self.data_dir)
        self.config_dir = Path(self.config_dir)

        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.extra_allowlist = list(self.extra_allowlist) + self.site_allowlist.domains()

    @property
    def allowlist_path(self) -> Path:
        return self.config_dir / "allowlist.txt"

    @property
    def site_allowlist(self) -> SiteAllowlist:
        return SiteAllowlist(self.allowlist_path)

    @property
    def db_path(self) -> Path:
        return self.data_dir / "iurl.db"


def _load_heuristics(config_dir: Path) -> dict:
    """Load detector table overrides from config/heuristics.yaml (optional)."""
    path = Path(config_dir or ".") / "heuristics.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse heuristics.yaml: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("heuristics.yaml must contain a mapping; ignoring it")
        return {}

    def _coerce_strings(raw) -> Optional[list[str]]:
        if not isinstance(raw, (list, tuple, set)):
            return None
        items = [str(item).strip().lower() for item in raw if str(item).strip()]
        return items or None

    domain = data.get("domain") if isinstance(data.get("domain"), dict) else {}
    redirects = data.get("redirects") if isinstance(data.get("redirects"), dict) else {}

    heuristics: dict[str, list[str]] = {}
    for key, raw in (
        ("brands", domain.get("brands")),
        ("suspicious_tlds", domain.get("suspicious_tlds")),
        ("shorteners", redirects.get("shorteners")),
    ):
        values = _coerce_strings(raw)
        if values:
            heuristics[key] = values
    return heuristics


def _parse_api_tokens(raw: str) -> dict[str, str]:
    """Parse `token:user,token2:user2`. Entries without a user are skipped."""
    tokens: dict[str, str] = {}
    for item in raw.split(","):
        token, sep, user = item.strip().partition(":")
        token = token.strip()
        user = user.strip()
        if not sep or not token or not user:
            if item.strip():
                logger.warning("Ignoring malformed API_TOKENS entry")
            continue
        tokens[token] = user
    return tokens


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    heuristics = _load_heuristics(config_dir)

    return Config(
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=int(os.getenv("API_PORT", "8080")),
        api_tokens=_parse_api_tokens(os.getenv("API_TOKENS", "")),
        api_trusted_proxies=[p.strip() for p in os.getenv("API_TRUSTED_PROXIES", "").split(",") if p.strip()],
        ai_endpoint=os.getenv("AI_ENDPOINT", "").strip(),
        ai_api_key=os.getenv("AI_API_KEY", ""),
        ai_timeout=float(os.getenv("AI_TIMEOUT", "10")),
        ai_cache_ttl_seconds=int(os.getenv("AI_CACHE_TTL_SECONDS", "3600")),
        scan_rate_limit_per_minute=int(os.getenv("SCAN_RATE_LIMIT_PER_MINUTE", "10")),
        scan_rate_limit_burst=int(os.getenv("SCAN_RATE_LIMIT_BURST", "10")),
        history_limit=int(os.getenv("HISTORY_LIMIT", "50")),
        data_dir=Path(os.getenv("DATA_DIR", "./data")),
        config_dir=config_dir,
        brands=heuristics.get("brands"),
        suspicious_tlds=heuristics.get("suspicious_tlds"),
        shorteners=heuristics.get("shorteners"),
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if not 0 < config.api_port < 65536:
        errors.append("API_PORT must be between 1 and 65535")
    if config.ai_timeout <= 0:
        errors.append("AI_TIMEOUT must be positive")
    if config.ai_cache_ttl_seconds < 0:
        errors.append("AI_CACHE_TTL_SECONDS must not be negative")
    if config.scan_rate_limit_per_minute <= 0:
        errors.append("SCAN_RATE_LIMIT_PER_MINUTE must be positive")
    if config.scan_rate_limit_burst <= 0:
        errors.append("SCAN_RATE_LIMIT_BURST must be positive")
    if config.history_limit <= 0:
        errors.append("HISTORY_LIMIT must be positive")
    if config.ai_endpoint and not config.ai_endpoint.startswith(("http://", "https://")):
        errors.append("AI_ENDPOINT must be an http(s) URL")

    if not config.ai_endpoint:
        # Scans still run; the AI share of the danger score is always zero.
        logger.info("No AI_ENDPOINT configured; AI analysis will be disabled")

    return errors
