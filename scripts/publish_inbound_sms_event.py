#!/usr/bin/env python3
"""Publish one inbound SMS event to Kafka for local testing."""

from __future__ import annotations

import argparse
import sys
import uuid
from datetime import UTC, datetime
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from notification_relay.adapters.kafka_runtime import publish_inbound_sms_event  # noqa: E402
from notification_relay.config import load_env_file  # noqa: E402


def main() -> int:
    load_env_file(REPO_ROOT / ".env")
    args = parse_args()
    payload = args.raw if args.raw is not None else build_payload(args)
    metadata = publish_inbound_sms_event(payload, topic=args.topic)

    print("[PUBLISHED]")
    print(f"topic={metadata['topic']}")
    print(f"partition={metadata['partition']}")
    print(f"offset={metadata['offset']}")
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Publish one inbound SMS event for Kafka testing."
    )
    parser.add_argument(
        "--from-phone",
        default="+15555550123",
        help="Sender phone number in E.164 format.",
    )
    parser.add_argument(
        "--to-phone",
        default="+15555550111",
        help="Receiving relay phone number in E.164 format.",
    )
    parser.add_argument(
        "--message",
        default="Hello from the inbound SMS demo",
        help="Message text for the event payload.",
    )
    parser.add_argument(
        "--raw",
        default=None,
        help="Publish this exact string instead of a generated JSON event.",
    )
    parser.add_argument(
        "--topic",
        default=None,
        help="Override Kafka topic (defaults to KAFKA_TOPIC_INBOUND_SMS).",
    )
    return parser.parse_args()


def build_payload(args: argparse.Namespace) -> dict[str, object]:
    now = datetime.now(tz=UTC).isoformat()
    return {
        "id": str(uuid.uuid4()),
        "eventType": "Microsoft.Communication.SMSReceived",
        "eventTime": now,
        "data": {
            "messageId": f"msg-{uuid.uuid4().hex[:12]}",
            "from": args.from_phone,
            "to": args.to_phone,
            "message": args.message,
            "receivedTimestamp": now,
        },
    }


if __name__ == "__main__":
    sys.exit(main())
