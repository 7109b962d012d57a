"""Allowlist gate: trusted domains skip scoring entirely."""

from __future__ import annotations

from typing import Iterable

from ..utils.domains import ParseError, hostname_matches, parse_url
from .models import AllowlistEntry

BUILTIN_ALLOWLIST = (
    "google.com",
    "gmail.com",
    "youtube.com",
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "linkedin.com",
    "microsoft.com",
    "apple.com",
    "amazon.com",
    "netflix.com",
    "spotify.com",
    "github.com",
    "stackoverflow.com",
    "wikipedia.org",
    "reddit.com",
    "tiktok.com",
    "whatsapp.com",
    "zoom.us",
    "paypal.com",
    "stripe.com",
    "dropbox.com",
    "slack.com",
    "discord.com",
    "chatgpt.com",
    "openai.com",
    "claude.ai",
    "anthropic.com",
)


def builtin_entries(extra: Iterable[str] = ()) -> list[AllowlistEntry]:
    """Built-in entries, optionally extended by site-wide trusted domains."""
    domains = list(BUILTIN_ALLOWLIST)
    for domain in sorted(extra):
        if domain and domain not in domains:
            domains.append(domain)
    return [AllowlistEntry(domain=d) for d in domains]


def is_trusted(url: str, entries: Iterable[AllowlistEntry]) -> bool:
    """True when the URL's host is an allowlisted domain or one of its subdomains."""
    try:
        hostname = parse_url(url).hostname
    except ParseError:
        return False
    return any(hostname_matches(hostname, entry.domain) for entry in entries)
