"""Inbound SMS ingestion: one persisted event per queue delivery.

Mental model refresher:
- A queue message is never rejected for its content. Unparseable payloads are
  stored with `parse_error` set so nothing is lost and the consumer can still
  acknowledge the delivery.
- The only failure that escapes is `StorageUnavailableError`; the consumer
  decides whether that becomes a dead-letter or a no-commit.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable
import uuid

from ..domain.records import InboundEvent, utc_now
from ..types import Store

INBOUND_COLLECTION = "inbound_sms"

# Namespace for ids derived from upstream message ids when deduplicating.
INBOUND_ID_NAMESPACE = uuid.UUID("6f1c8a52-3d0e-4c57-9a0b-2f4d1e7c9b31")


class InboundIngestor:
    def __init__(
        self,
        store: Store,
        *,
        dedupe_by_source_id: bool = False,
        id_factory: Callable[[], str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._dedupe = dedupe_by_source_id
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._logger = logger or logging.getLogger(__name__)

    @property
    def dedupe_by_source_id(self) -> bool:
        return self._dedupe

    def ingest(
        self,
        raw_message: str | bytes,
        *,
        source_message_id: str | None = None,
    ) -> InboundEvent:
        text = _as_text(raw_message)
        data, parse_error = _extract_data(text)

        deduping = self._dedupe and bool(source_message_id)
        event = InboundEvent(
            id=(
                str(uuid.uuid5(INBOUND_ID_NAMESPACE, source_message_id))
                if deduping and source_message_id
                else self._id_factory()
            ),
            raw_message=text,
            data=data,
            ingested_at_utc=utc_now(),
            parse_error=parse_error,
            source_message_id=source_message_id,
        )

        if deduping:
            existing = self._store.insert_if_absent(INBOUND_COLLECTION, event.id, event.to_document())
            if existing is not None:
                self._logger.info(
                    "[INGEST] event_id=%s source_message_id=%s duplicate=true",
                    event.id,
                    source_message_id,
                )
                return InboundEvent.from_document(existing)
        else:
            self._store.put(INBOUND_COLLECTION, event.id, event.to_document())

        if parse_error is not None:
            self._logger.error(
                "[INGEST] event_id=%s source_message_id=%s parse_error=%s",
                event.id,
                source_message_id,
                parse_error,
            )
        else:
            self._logger.info(
                "[INGEST] event_id=%s source_message_id=%s has_data=%s",
                event.id,
                source_message_id,
                event.data is not None,
            )
        return event

    def get(self, event_id: str) -> InboundEvent | None:
        document = self._store.get(INBOUND_COLLECTION, event_id)
        return InboundEvent.from_document(document) if document is not None else None


def _as_text(raw_message: str | bytes) -> str:
    if isinstance(raw_message, bytes):
        return raw_message.decode("utf-8", errors="replace")
    return str(raw_message)


def _extract_data(text: str) -> tuple[Any, str | None]:
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError) as exc:
        return None, f"Failed to parse queue JSON: {type(exc).__name__}: {exc}"
    if isinstance(parsed, dict):
        return parsed.get("data"), None
    return None, None
