"""Exceptions raised across iurl."""


class IurlError(Exception):
    """Base class for iurl errors."""


class InvalidUrlError(IurlError, ValueError):
    """Input is not an absolute http(s) URL; nothing was scored."""


class InvalidDomainError(IurlError, ValueError):
    """Allowlist input does not contain a usable hostname."""


class AuthenticationRequired(IurlError):
    """A guest attempted something that needs an authenticated user."""


class AllowlistEntryLocked(IurlError):
    """Built-in allowlist entries cannot be removed."""
