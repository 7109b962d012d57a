"""URL parsing and domain normalization utilities."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

import idna

HOSTNAME_RE = re.compile(r"^(?=.{1,253}$)[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9_])?(?:\.[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9_])?)*$")


class ParseError(ValueError):
    """Raised when a string cannot be parsed as an absolute URL with a host."""


@dataclass(frozen=True)
class ParsedUrl:
    """Components of an absolute URL."""

    raw: str
    scheme: str
    hostname: str
    port: int | None
    path: str
    query: str

    @property
    def path_and_query(self) -> str:
        """Path (``/`` when empty) plus ``?query`` when a query is present."""
        path = self.path or "/"
        return f"{path}?{self.query}" if self.query else path

    @property
    def is_ip(self) -> bool:
        return is_ip_address(self.hostname)


def to_ascii_hostname(host: str) -> str:
    """Lowercase a hostname and encode IDN labels to punycode (best-effort)."""
    host = (host or "").strip().lower().rstrip(".")
    if not host or host.isascii():
        return host
    try:
        return idna.encode(host, uts46=True).decode("ascii")
    except (idna.IDNAError, UnicodeError):
        return host


def parse_url(url: str) -> ParsedUrl:
    """Parse an absolute URL, raising ParseError when scheme or host is missing."""
    if not isinstance(url, str) or not url.strip():
        raise ParseError("empty URL")
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as exc:
        raise ParseError(str(exc)) from exc

    if not parts.scheme or not parts.netloc:
        raise ParseError(f"not an absolute URL: {url!r}")
    hostname = to_ascii_hostname(parts.hostname or "")
    if not hostname:
        raise ParseError(f"URL has no host: {url!r}")

    return ParsedUrl(
        raw=url,
        scheme=parts.scheme.lower(),
        hostname=hostname,
        port=port,
        path=parts.path,
        query=parts.query,
    )


def is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


def is_http_url(url: str) -> bool:
    """Return True for absolute http(s) URLs with a host."""
    try:
        parsed = parse_url(url)
    except ParseError:
        return False
    return parsed.scheme in ("http", "https")


def extract_hostname(value: str) -> str:
    """Extract a normalized hostname from a URL or bare domain."""
    raw = (value or "").strip()
    if not raw:
        return ""
    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        return parse_url(candidate).hostname
    except ParseError:
        return ""


def registrable_label(hostname: str) -> str:
    """
    Return the label a typosquat check compares against brand names.

    A leading ``www.`` is dropped and the first dot-segment is returned, so
    brand look-alikes placed in a subdomain are caught too:
    ``paypa1.secure-login.com`` -> ``paypa1``.
    """
    host = (hostname or "").strip().lower().strip(".")
    if host.startswith("www.") and len(host) > 4:
        host = host[4:]
    return host.split(".")[0]


def normalize_allowlist_domain(value: str) -> str:
    """
    Normalize an allowlist entry to a bare hostname.

    - Lowercase, punycode for IDNs
    - Scheme, port, path, query and fragment dropped
    - "" when the host is not a valid hostname or IP address
    """
    host = extract_hostname(value)
    if not host or not (HOSTNAME_RE.match(host) or is_ip_address(host)):
        return ""
    return host


def hostname_matches(hostname: str, domain: str) -> bool:
    """True when hostname is the domain itself or one of its subdomains."""
    domain = (domain or "").lower()
    if not hostname or not domain:
        return False
    return hostname == domain or hostname.endswith("." + domain)
