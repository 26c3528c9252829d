"""Outbox recorder: denormalized audit copy of dispatch records.

The ledger is the source of truth for dispatch status; this collection is what
reconciliation jobs read, keyed by record id.
"""

from __future__ import annotations

import logging

from ..domain.records import DispatchRecord
from ..types import Store

OUTBOX_COLLECTION = "dispatch_records"


class OutboxRecorder:
    def __init__(self, store: Store, *, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    def record(self, record: DispatchRecord) -> None:
        """Upsert the record. Raises `StorageUnavailableError` if the store is down."""
        self._store.put(OUTBOX_COLLECTION, record.id, record.to_document())
        self._logger.info(
            "[OUTBOX] record_id=%s key=%s status=%s",
            record.id,
            record.idempotency_key,
            record.status.value,
        )

    def get(self, record_id: str) -> DispatchRecord | None:
        document = self._store.get(OUTBOX_COLLECTION, record_id)
        return DispatchRecord.from_document(document) if document is not None else None
