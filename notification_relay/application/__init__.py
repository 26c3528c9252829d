"""Application layer: ledger, dispatch, outbox, ingestion and throttling."""

from .dispatch import DispatchPipeline, RetryPolicy
from .ingest import InboundIngestor
from .ledger import IdempotencyLedger, Reservation, ReservationKind
from .outbox import OutboxRecorder
from .relay import relay_notification
from .throttle import Throttle

__all__ = [
    "DispatchPipeline",
    "IdempotencyLedger",
    "InboundIngestor",
    "OutboxRecorder",
    "Reservation",
    "ReservationKind",
    "RetryPolicy",
    "Throttle",
    "relay_notification",
]
