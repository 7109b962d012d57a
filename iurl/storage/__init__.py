"""Storage modules for iurl."""

from .allowlist_store import AllowlistStore
from .database import Database
from .site_allowlist import SiteAllowlist

__all__ = ["AllowlistStore", "Database", "SiteAllowlist"]
