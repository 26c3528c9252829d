"""Durable record types: dispatch records, outcomes and inbound events.

Records cross the store boundary as plain JSON-compatible dictionaries
(`to_document` / `from_document`) so any key-value backend can hold them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Mapping
import uuid

from ..types import Channel, Document


class DispatchStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DispatchStatus.PENDING


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class DispatchRecord:
    id: str
    idempotency_key: str
    channel: Channel
    recipients: tuple[str, ...]
    status: DispatchStatus = DispatchStatus.PENDING
    attempts: int = 0
    last_error: str | None = None
    created_at_utc: datetime = field(default_factory=utc_now)
    sent_at_utc: datetime | None = None
    completed_at_utc: datetime | None = None
    provider_id: str | None = None
    provider_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def pending(
        cls,
        *,
        idempotency_key: str,
        channel: Channel,
        recipients: tuple[str, ...],
    ) -> DispatchRecord:
        return cls(
            id=new_record_id(),
            idempotency_key=idempotency_key,
            channel=channel,
            recipients=tuple(recipients),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def with_attempt(self, error: str | None) -> DispatchRecord:
        return replace(self, attempts=self.attempts + 1, last_error=error)

    def completed(
        self,
        status: DispatchStatus,
        *,
        error: str | None = None,
        provider_id: str | None = None,
        provider_response: Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> DispatchRecord:
        if not status.is_terminal:
            raise ValueError("completed() requires a terminal status")
        finished_at = now or utc_now()
        return replace(
            self,
            status=status,
            last_error=error if status is DispatchStatus.FAILED else self.last_error,
            provider_id=provider_id,
            provider_response=dict(provider_response or {}),
            sent_at_utc=finished_at if status is DispatchStatus.SENT else None,
            completed_at_utc=finished_at,
        )

    def to_document(self) -> Document:
        return {
            "id": self.id,
            "idempotencyKey": self.idempotency_key,
            "channel": self.channel.value,
            "recipients": list(self.recipients),
            "status": self.status.value,
            "attempts": self.attempts,
            "lastError": self.last_error,
            "createdAtUtc": _iso(self.created_at_utc),
            "sentAtUtc": _iso(self.sent_at_utc),
            "completedAtUtc": _iso(self.completed_at_utc),
            "providerId": self.provider_id,
            "providerResponse": dict(self.provider_response),
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> DispatchRecord:
        return cls(
            id=str(document["id"]),
            idempotency_key=str(document["idempotencyKey"]),
            channel=Channel(document["channel"]),
            recipients=tuple(document.get("recipients") or ()),
            status=DispatchStatus(document.get("status", DispatchStatus.PENDING.value)),
            attempts=int(document.get("attempts", 0)),
            last_error=document.get("lastError"),
            created_at_utc=_parse_iso(document.get("createdAtUtc")) or utc_now(),
            sent_at_utc=_parse_iso(document.get("sentAtUtc")),
            completed_at_utc=_parse_iso(document.get("completedAtUtc")),
            provider_id=document.get("providerId"),
            provider_response=dict(document.get("providerResponse") or {}),
        )


@dataclass(frozen=True)
class DispatchOutcome:
    """What one `DispatchPipeline.send` call produced."""

    status: DispatchStatus
    record: DispatchRecord | None
    error: str | None = None
    replayed: bool = False
    provider_calls: int = 0

    @classmethod
    def from_record(
        cls,
        record: DispatchRecord,
        *,
        replayed: bool = False,
        provider_calls: int = 0,
    ) -> DispatchOutcome:
        error = record.last_error if record.status is DispatchStatus.FAILED else None
        return cls(
            status=record.status,
            record=record,
            error=error,
            replayed=replayed,
            provider_calls=provider_calls,
        )


@dataclass(frozen=True)
class InboundEvent:
    id: str
    raw_message: str
    data: Any
    ingested_at_utc: datetime
    parse_error: str | None = None
    source_message_id: str | None = None

    def to_document(self) -> Document:
        return {
            "id": self.id,
            "message": self.raw_message,
            "data": self.data,
            "ingestedUtc": _iso(self.ingested_at_utc),
            "parseError": self.parse_error,
            "sourceMessageId": self.source_message_id,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> InboundEvent:
        return cls(
            id=str(document["id"]),
            raw_message=str(document.get("message", "")),
            data=document.get("data"),
            ingested_at_utc=_parse_iso(document.get("ingestedUtc")) or utc_now(),
            parse_error=document.get("parseError"),
            source_message_id=document.get("sourceMessageId"),
        )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))
