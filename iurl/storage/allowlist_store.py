"""Allowlist store: built-in trusted domains plus per-user entries."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..errors import AllowlistEntryLocked, AuthenticationRequired, InvalidDomainError
from ..scanner.allowlist import builtin_entries
from ..scanner.models import AllowlistEntry
from ..utils.domains import normalize_allowlist_domain
from .database import Database

logger = logging.getLogger(__name__)


class AllowlistStore:
    """Reads and mutates the allowlist visible to each user."""

    def __init__(self, database: Database, extra_builtins: Iterable[str] = ()):
        self.database = database
        self._builtins = builtin_entries(extra_builtins)
        self._builtin_domains = {entry.domain for entry in self._builtins}

    @property
    def builtins(self) -> list[AllowlistEntry]:
        return list(self._builtins)

    async def get_allowlist(self, user_id: Optional[str] = None) -> list[AllowlistEntry]:
        """Built-in entries followed by the user's own entries."""
        entries = self.builtins
        if user_id:
            entries.extend(await self.database.list_allowlist_entries(user_id))
        return entries

    @staticmethod
    def _normalize(domain: str) -> str:
        normalized = normalize_allowlist_domain(domain)
        if not normalized:
            raise InvalidDomainError(f"Not a domain: {domain!r}")
        return normalized

    async def add(self, user_id: Optional[str], domain: str) -> AllowlistEntry:
        """Trust a domain for this user. Adding an existing entry returns it unchanged."""
        if not user_id:
            raise AuthenticationRequired("Sign in to manage trusted domains")
        normalized = self._normalize(domain)
        entry, created = await self.database.add_allowlist_entry(user_id, normalized)
        if created:
            logger.info("User %s trusted %s", user_id, normalized)
        return entry

    async def remove(self, user_id: Optional[str], domain: str) -> bool:
        """Remove a user entry. Returns False when the user never trusted it."""
        if not user_id:
            raise AuthenticationRequired("Sign in to manage trusted domains")
        normalized = self._normalize(domain)
        removed = await self.database.remove_allowlist_entry(user_id, normalized)
        if not removed and normalized in self._builtin_domains:
            raise AllowlistEntryLocked(f"{normalized} is a built-in trusted domain")
        if removed:
            logger.info("User %s removed %s from trusted domains", user_id, normalized)
        return removed
