#!/usr/bin/env python3
"""Run the inbound SMS consumer flow without Kafka."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from notification_relay.adapters.consumer_handler import handle_batch  # noqa: E402
from notification_relay.adapters.stores import InMemoryStore  # noqa: E402
from notification_relay.application.ingest import INBOUND_COLLECTION, InboundIngestor  # noqa: E402
from notification_relay.bootstrap import configure_logging  # noqa: E402


def main() -> int:
    configure_logging("INFO")
    store = InMemoryStore()
    ingestor = InboundIngestor(store, dedupe_by_source_id=True)
    committed_offsets: list[tuple[int, int]] = []
    rejected_offsets: list[tuple[int, int, str]] = []

    def commit(record: dict[str, Any]) -> None:
        committed_offsets.append((int(record["partition"]), int(record["offset"])))

    def reject(record: dict[str, Any], reason: str) -> None:
        rejected_offsets.append((int(record["partition"]), int(record["offset"]), reason))

    records = sample_records()
    # Redeliver the first record to show deduplication by upstream id.
    results = handle_batch(
        [*records, records[0]],
        ingestor=ingestor,
        commit=commit,
        reject=reject,
    )

    print("")
    print("[BATCH SUMMARY]")
    for result in results:
        meta = result["record_meta"]
        event = result["event"]
        print(
            f"offset={meta['offset']} status={result['status']} "
            f"event_id={event.id if event else None} error={result['error']}"
        )

    print("")
    print("[OFFSETS]")
    print(f"committed={committed_offsets}")
    print(f"rejected={rejected_offsets}")
    print(f"stored_events={len(store.documents(INBOUND_COLLECTION))}")
    return 0


def sample_records() -> list[dict[str, Any]]:
    return [
        {
            "topic": "inbound-sms",
            "partition": 0,
            "offset": 100,
            "value": (
                b'{"eventType":"Microsoft.Communication.SMSReceived",'
                b'"data":{"from":"+15555550123","to":"+15555550111","message":"STOP"}}'
            ),
        },
        {
            "topic": "inbound-sms",
            "partition": 0,
            "offset": 101,
            "value": b'{"eventType":"Microsoft.Communication.SMSDeliveryReportReceived"}',
        },
        {
            "topic": "inbound-sms",
            "partition": 0,
            "offset": 102,
            "value": b"not valid json",
        },
    ]


if __name__ == "__main__":
    sys.exit(main())
