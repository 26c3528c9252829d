"""Exception types raised across the relay.

Provider rejections are not exceptions; see `ProviderResult`.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class ConfigurationError(RelayError):
    """Required configuration is missing or malformed. Fatal at startup."""


class ValidationError(RelayError):
    """A send request could not be turned into an envelope."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "reason": self.reason}


class StorageUnavailableError(RelayError):
    """The durable store could not complete an operation."""
