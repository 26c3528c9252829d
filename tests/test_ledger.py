from __future__ import annotations

import unittest
from typing import Any

from notification_relay.adapters.stores import InMemoryStore
from notification_relay.application.ledger import (
    LEDGER_COLLECTION,
    IdempotencyLedger,
    ReservationKind,
)
from notification_relay.domain.envelope import Envelope
from notification_relay.domain.records import DispatchStatus
from notification_relay.errors import StorageUnavailableError
from notification_relay.types import Channel


def make_envelope(key: str = "key-1") -> Envelope:
    return Envelope(
        channel=Channel.SMS,
        recipients=("+15551234567",),
        body="Hi",
        idempotency_key=key,
    )


class IdempotencyLedgerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.ledger = IdempotencyLedger(self.store)

    def test_first_reservation_is_fresh_and_pending(self) -> None:
        reservation = self.ledger.reserve(make_envelope())

        self.assertIs(reservation.kind, ReservationKind.FRESH)
        self.assertEqual(reservation.record.status, DispatchStatus.PENDING)
        self.assertEqual(reservation.record.attempts, 0)
        self.assertEqual(reservation.record.recipients, ("+15551234567",))
        self.assertEqual(self.store.get(LEDGER_COLLECTION, "key-1")["id"], reservation.record.id)

    def test_second_reservation_while_pending_is_in_flight(self) -> None:
        first = self.ledger.reserve(make_envelope())
        second = self.ledger.reserve(make_envelope())

        self.assertIs(second.kind, ReservationKind.IN_FLIGHT)
        self.assertEqual(second.record.id, first.record.id)

    def test_reservation_after_completion_returns_stored_record(self) -> None:
        reservation = self.ledger.reserve(make_envelope())
        attempted = self.ledger.record_attempt(reservation.record)
        self.ledger.complete(attempted, status=DispatchStatus.SENT, provider_id="SM1")

        again = self.ledger.reserve(make_envelope())

        self.assertIs(again.kind, ReservationKind.COMPLETED)
        self.assertEqual(again.record.status, DispatchStatus.SENT)
        self.assertEqual(again.record.provider_id, "SM1")
        self.assertEqual(again.record.attempts, 1)

    def test_record_attempt_increments_and_persists(self) -> None:
        record = self.ledger.reserve(make_envelope()).record

        record = self.ledger.record_attempt(record, error="timeout")
        record = self.ledger.record_attempt(record, error="timeout")

        stored = self.ledger.lookup("key-1")
        assert stored is not None
        self.assertEqual(stored.attempts, 2)
        self.assertEqual(stored.last_error, "timeout")

    def test_complete_sets_timestamps(self) -> None:
        record = self.ledger.reserve(make_envelope()).record

        sent = self.ledger.complete(record, status=DispatchStatus.SENT)

        self.assertIsNotNone(sent.sent_at_utc)
        self.assertEqual(sent.completed_at_utc, sent.sent_at_utc)

        other = self.ledger.reserve(make_envelope("key-2")).record
        failed = self.ledger.complete(other, status=DispatchStatus.FAILED, error="rejected")

        self.assertIsNone(failed.sent_at_utc)
        self.assertIsNotNone(failed.completed_at_utc)
        self.assertEqual(failed.last_error, "rejected")

    def test_complete_is_a_no_op_once_terminal(self) -> None:
        record = self.ledger.reserve(make_envelope()).record
        sent = self.ledger.complete(record, status=DispatchStatus.SENT, provider_id="first")

        again = self.ledger.complete(record, status=DispatchStatus.FAILED, error="late")

        self.assertEqual(again.status, DispatchStatus.SENT)
        self.assertEqual(again.provider_id, "first")
        self.assertEqual(self.ledger.lookup("key-1"), sent)

    def test_complete_rejects_pending_status(self) -> None:
        record = self.ledger.reserve(make_envelope()).record

        with self.assertRaises(ValueError):
            self.ledger.complete(record, status=DispatchStatus.PENDING)

    def test_lookup_of_unknown_key_is_none(self) -> None:
        self.assertIsNone(self.ledger.lookup("nope"))

    def test_unreadable_ledger_document_is_a_storage_error(self) -> None:
        self.store.put(LEDGER_COLLECTION, "key-1", {"garbage": True})

        with self.assertRaises(StorageUnavailableError):
            self.ledger.reserve(make_envelope())

    def test_store_failure_during_reserve_propagates(self) -> None:
        class DownStore(InMemoryStore):
            def insert_if_absent(
                self, collection: str, key: str, document: dict[str, Any]
            ) -> dict[str, Any] | None:
                raise StorageUnavailableError("down")

        with self.assertRaises(StorageUnavailableError):
            IdempotencyLedger(DownStore()).reserve(make_envelope())


if __name__ == "__main__":
    unittest.main()
