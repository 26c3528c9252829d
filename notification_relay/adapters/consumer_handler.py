"""Consumer-handler adapter functions for inbound SMS queue records.

Mental model refresher:
- This is the controller-like entrypoint for queue processing.
- Real Kafka code calls this after polling a record.
- Flow:
  record -> ingestor (parse + persist) -> commit/no-commit decision
- Commit policy: acknowledge once the event is persisted, including events
  whose payload failed to parse. Only a storage failure withholds the commit
  and hands the record to `reject` (dead-letter path).
"""

from __future__ import annotations

import json
from typing import Any, Callable, Mapping, Sequence

from ..application.ingest import InboundIngestor
from ..errors import StorageUnavailableError
from ..types import ConsumerResult

Record = Mapping[str, Any]
CommitFn = Callable[[Record], None]
RejectFn = Callable[[Record, str], None]


def handle_message(
    record: Record,
    *,
    ingestor: InboundIngestor,
    commit: CommitFn,
    reject: RejectFn | None = None,
) -> ConsumerResult:
    """Handle one incoming record and decide commit/no-commit."""
    try:
        event = ingestor.ingest(
            _get_record_payload(record),
            source_message_id=source_message_id(record),
        )
    except StorageUnavailableError as exc:
        error = f"persist_failed: {exc}"
        if reject is not None:
            reject(record, error)
        return {
            "status": "persist_failed",
            "record_meta": _record_meta(record),
            "event": None,
            "should_commit": False,
            "error": error,
        }

    commit(record)
    return {
        "status": "ingested_with_parse_error" if event.parse_error else "ingested",
        "record_meta": _record_meta(record),
        "event": event,
        "should_commit": True,
        "error": event.parse_error,
    }


def handle_batch(
    records: Sequence[Record],
    *,
    ingestor: InboundIngestor,
    commit: CommitFn,
    reject: RejectFn | None = None,
) -> list[ConsumerResult]:
    """Handle a batch of records sequentially using `handle_message`."""
    results: list[ConsumerResult] = []
    for record in records:
        result = handle_message(
            record,
            ingestor=ingestor,
            commit=commit,
            reject=reject,
        )
        results.append(result)
    return results


def source_message_id(record: Record) -> str | None:
    """Stable upstream id (`topic:partition:offset`) when the transport provides one."""
    topic = record.get("topic")
    partition = record.get("partition")
    offset = record.get("offset")
    if topic is None or partition is None or offset is None:
        return None
    return f"{topic}:{partition}:{offset}"


def _get_record_payload(record: Record) -> str | bytes:
    payload = record.get("value")
    if payload is None:
        return ""
    if isinstance(payload, (str, bytes)):
        return payload
    if isinstance(payload, (Mapping, list)):
        return json.dumps(payload, separators=(",", ":"))
    return str(payload)


def _record_meta(record: Record) -> dict[str, Any]:
    return {
        "topic": record.get("topic"),
        "partition": record.get("partition"),
        "offset": record.get("offset"),
    }
