"""Tests for configuration loading."""

import pytest

from iurl.config import Config, _load_heuristics, _parse_api_tokens, load_config, validate_config

ENV_VARS = [
    "API_HOST",
    "API_PORT",
    "API_TOKENS",
    "API_TRUSTED_PROXIES",
    "AI_ENDPOINT",
    "AI_API_KEY",
    "AI_TIMEOUT",
    "AI_CACHE_TTL_SECONDS",
    "SCAN_RATE_LIMIT_PER_MINUTE",
    "SCAN_RATE_LIMIT_BURST",
    "HISTORY_LIMIT",
]


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path / "config"))
    (tmp_path / "config").mkdir()
    return monkeypatch


def test_defaults(env, tmp_path):
    config = load_config()
    assert config.api_host == "127.0.0.1"
    assert config.api_port == 8080
    assert config.api_tokens == {}
    assert config.api_trusted_proxies == []
    assert config.ai_endpoint == ""
    assert config.scan_rate_limit_per_minute == 10
    assert config.history_limit == 50
    assert config.brands is None
    assert config.scoring.detector_weight_total == 120
    assert config.data_dir.is_dir()
    assert config.db_path == tmp_path / "data" / "iurl.db"
    assert validate_config(config) == []


def test_environment_overrides(env):
    env.setenv("API_PORT", "9000")
    env.setenv("API_TOKENS", "abc:alice, def:bob")
    env.setenv("API_TRUSTED_PROXIES", "10.0.0.1, ,10.0.0.2")
    env.setenv("AI_ENDPOINT", "https://ai.example/analyze")
    env.setenv("AI_TIMEOUT", "2.5")
    env.setenv("SCAN_RATE_LIMIT_BURST", "3")

    config = load_config()

    assert config.api_port == 9000
    assert config.api_tokens == {"abc": "alice", "def": "bob"}
    assert config.api_trusted_proxies == ["10.0.0.1", "10.0.0.2"]
    assert config.ai_endpoint == "https://ai.example/analyze"
    assert config.ai_timeout == 2.5
    assert config.scan_rate_limit_burst == 3


def test_config_files(env, tmp_path):
    config_dir = tmp_path / "config"
    (config_dir / "allowlist.txt").write_text("# company sites\nintranet.example\nhttps://Docs.Example.net/x\n")
    (config_dir / "heuristics.yaml").write_text(
        "domain:\n"
        "  brands: [MyBank, paypal]\n"
        "  suspicious_tlds: [test]\n"
        "redirects:\n"
        "  shorteners: [go.example.com]\n"
    )

    config = load_config()

    assert config.extra_allowlist == ["intranet.example", "docs.example.net"]
    assert config.brands == ["mybank", "paypal"]
    assert config.suspicious_tlds == ["test"]
    assert config.shorteners == ["go.example.com"]


def test_broken_heuristics_file_is_ignored(tmp_path):
    (tmp_path / "heuristics.yaml").write_text("domain: [unclosed\n")
    assert _load_heuristics(tmp_path) == {}
    (tmp_path / "heuristics.yaml").write_text("- just\n- a list\n")
    assert _load_heuristics(tmp_path) == {}
    assert _load_heuristics(tmp_path / "missing") == {}


def test_parse_api_tokens_skips_malformed_entries():
    assert _parse_api_tokens("abc:alice,broken,:nobody,xyz:,def:bob") == {"abc": "alice", "def": "bob"}
    assert _parse_api_tokens("") == {}


def test_validate_config(tmp_path):
    config = Config(
        api_port=0,
        ai_endpoint="ftp://ai.example",
        ai_timeout=0,
        history_limit=0,
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
    )
    errors = validate_config(config)
    assert "API_PORT must be between 1 and 65535" in errors
    assert "AI_TIMEOUT must be positive" in errors
    assert "HISTORY_LIMIT must be positive" in errors
    assert "AI_ENDPOINT must be an http(s) URL" in errors
