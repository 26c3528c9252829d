"""Idempotency ledger: one dispatch record per idempotency key.

The ledger is the gate in front of every provider call. `reserve` is a single
conditional write against the store, so two identical requests racing each
other can never both come back `fresh`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Mapping

from ..domain.envelope import Envelope
from ..domain.records import DispatchRecord, DispatchStatus
from ..errors import StorageUnavailableError
from ..types import Store

LEDGER_COLLECTION = "dispatch_ledger"


class ReservationKind(str, Enum):
    FRESH = "fresh"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Reservation:
    kind: ReservationKind
    record: DispatchRecord


class IdempotencyLedger:
    def __init__(self, store: Store, *, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    def reserve(self, envelope: Envelope) -> Reservation:
        """Insert a pending record for the envelope's key unless one exists."""
        candidate = DispatchRecord.pending(
            idempotency_key=envelope.idempotency_key,
            channel=envelope.channel,
            recipients=envelope.recipients,
        )
        existing = self._store.insert_if_absent(
            LEDGER_COLLECTION, envelope.idempotency_key, candidate.to_document()
        )
        if existing is None:
            self._logger.info(
                "[RESERVE] key=%s record_id=%s kind=fresh",
                envelope.idempotency_key,
                candidate.id,
            )
            return Reservation(ReservationKind.FRESH, candidate)

        record = _decode(existing)
        kind = ReservationKind.COMPLETED if record.is_terminal else ReservationKind.IN_FLIGHT
        self._logger.info(
            "[RESERVE] key=%s record_id=%s kind=%s status=%s",
            envelope.idempotency_key,
            record.id,
            kind.value,
            record.status.value,
        )
        return Reservation(kind, record)

    def record_attempt(self, record: DispatchRecord, *, error: str | None = None) -> DispatchRecord:
        """Bump the attempt counter on a pending record."""
        updated = record.with_attempt(error)
        self._store.put(LEDGER_COLLECTION, record.idempotency_key, updated.to_document())
        return updated

    def complete(
        self,
        record: DispatchRecord,
        *,
        status: DispatchStatus,
        error: str | None = None,
        provider_id: str | None = None,
        provider_response: Mapping[str, Any] | None = None,
    ) -> DispatchRecord:
        """Move a pending record to `sent` or `failed`.

        Completing a record that is already terminal is a no-op and returns the
        stored record. Only the unit of work holding the reservation completes
        it, so the read-then-write here never races another writer.
        """
        stored = self.lookup(record.idempotency_key)
        if stored is not None and stored.is_terminal:
            self._logger.info(
                "[COMPLETE] key=%s record_id=%s already=%s",
                stored.idempotency_key,
                stored.id,
                stored.status.value,
            )
            return stored

        current = stored if stored is not None and stored.id == record.id else record
        finished = current.completed(
            status,
            error=error,
            provider_id=provider_id,
            provider_response=provider_response,
        )
        self._store.put(LEDGER_COLLECTION, record.idempotency_key, finished.to_document())
        self._logger.info(
            "[COMPLETE] key=%s record_id=%s status=%s attempts=%s",
            finished.idempotency_key,
            finished.id,
            finished.status.value,
            finished.attempts,
        )
        return finished

    def lookup(self, idempotency_key: str) -> DispatchRecord | None:
        document = self._store.get(LEDGER_COLLECTION, idempotency_key)
        return _decode(document) if document is not None else None


def _decode(document: Mapping[str, Any]) -> DispatchRecord:
    try:
        return DispatchRecord.from_document(document)
    except (KeyError, TypeError, ValueError) as exc:
        raise StorageUnavailableError(f"unreadable ledger record: {exc}") from exc
