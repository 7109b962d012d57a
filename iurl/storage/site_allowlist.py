"""Site-wide trusted domains kept in config/allowlist.txt."""

from __future__ import annotations

import logging
from pathlib import Path

from ..errors import InvalidDomainError
from ..utils.domains import normalize_allowlist_domain

logger = logging.getLogger(__name__)

HEADER = (
    "# Site-wide trusted domains, one per line. Subdomains are trusted too.",
    "# Loaded as built-ins at startup, so users cannot remove them.",
)


def _require_domain(value: str) -> str:
    domain = normalize_allowlist_domain(value)
    if not domain:
        raise InvalidDomainError(f"Not a domain: {value!r}")
    return domain


class SiteAllowlist:
    """
    Operator-managed allowlist file.

    Every entry becomes a built-in trusted domain for all users. Entries may
    be written as bare hosts or full URLs; they are normalized on read.
    Edits keep the operator's comments and line order. Lines that hold no
    usable hostname are logged and skipped rather than failing startup.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _lines(self) -> list[str]:
        if not self.path.exists():
            return []
        return self.path.read_text().splitlines()

    def domains(self) -> list[str]:
        """Normalized domains in file order, duplicates dropped."""
        found: list[str] = []
        for lineno, line in enumerate(self._lines(), start=1):
            value = line.strip()
            if not value or value.startswith("#"):
                continue
            domain = normalize_allowlist_domain(value)
            if not domain:
                logger.warning("%s:%d: skipping unusable entry %r", self.path, lineno, value)
                continue
            if domain not in found:
                found.append(domain)
        return found

    def add(self, value: str) -> tuple[str, bool]:
        """Append a domain. Returns (domain, created)."""
        domain = _require_domain(value)
        if domain in self.domains():
            return domain, False

        lines = self._lines() or list(HEADER)
        lines.append(domain)
        self._write(lines)
        logger.info("Added %s to %s", domain, self.path)
        return domain, True

    def remove(self, value: str) -> bool:
        """Drop every line naming the domain. Returns False if none did."""
        domain = _require_domain(value)
        lines = self._lines()
        kept = [
            line
            for line in lines
            if line.strip().startswith("#") or normalize_allowlist_domain(line) != domain
        ]
        if len(kept) == len(lines):
            return False

        self._write(kept)
        logger.info("Removed %s from %s", domain, self.path)
        return True

    def _write(self, lines: list[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text("\n".join(lines) + "\n")
        tmp_path.replace(self.path)
