"""Shared type aliases and small value types for the relay package."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

Payload = Mapping[str, Any]
Document = dict[str, Any]
RelayResult = dict[str, Any]
ConsumerResult = dict[str, Any]


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


@dataclass(frozen=True)
class ProviderResult:
    """Result of one provider call.

    `transient` is only meaningful when `accepted` is False: it tells the
    dispatch pipeline whether another attempt may succeed.
    """

    accepted: bool
    provider_id: str | None = None
    error: str | None = None
    transient: bool = False
    response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, provider_id: str | None = None, response: Mapping[str, Any] | None = None) -> ProviderResult:
        return cls(accepted=True, provider_id=provider_id, response=dict(response or {}))

    @classmethod
    def transient_failure(cls, error: str) -> ProviderResult:
        return cls(accepted=False, error=error, transient=True)

    @classmethod
    def permanent_failure(cls, error: str) -> ProviderResult:
        return cls(accepted=False, error=error, transient=False)


# send_email(*, sender: str, envelope: Envelope) -> ProviderResult
SendEmailFn = Callable[..., ProviderResult]
# send_sms(*, sender: str, to_phone_e164: str, message: str) -> ProviderResult
SendSMSFn = Callable[..., ProviderResult]

SleepFn = Callable[[float], None]
ClockFn = Callable[[], float]


class Store(Protocol):
    """Durable key-value store shared by every unit of work.

    `insert_if_absent` must be a single atomic conditional write: it returns
    None when the document was inserted, otherwise the document already stored.
    Every method raises `StorageUnavailableError` when the backend fails.
    """

    def insert_if_absent(self, collection: str, key: str, document: Document) -> Document | None: ...

    def put(self, collection: str, key: str, document: Document) -> None: ...

    def get(self, collection: str, key: str) -> Document | None: ...

    def increment_window(self, key: str, window_seconds: int) -> int: ...
