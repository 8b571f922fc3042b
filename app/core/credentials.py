"""Server-held upstream credential.

The store is built once from ``UpstreamSettings`` at startup and attached to
the application state; routes and the relay receive it explicitly instead of
reading the environment on every call.
"""

from __future__ import annotations

from app.core.config import UpstreamSettings


class CredentialStore:
    """Holds the upstream API key, if one is configured."""

    def __init__(self, api_key: str | None) -> None:
        self._api_key = api_key.strip() if api_key else None

    @classmethod
    def from_settings(cls, upstream: UpstreamSettings) -> "CredentialStore":
        return cls(upstream.api_key)

    def get_credential(self) -> str | None:
        """Return the configured API key, or None when absent or blank."""
        return self._api_key or None

    @property
    def configured(self) -> bool:
        return self.get_credential() is not None
