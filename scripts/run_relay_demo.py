#!/usr/bin/env python3
"""Run the send pipeline locally with console senders and an in-memory store.

The SMS sender fails transiently on its first call so the retry path shows up
in the log output.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from notification_relay.adapters.fake_senders import (  # noqa: E402
    send_email_via_console,
    send_sms_via_console,
)
from notification_relay.adapters.http_app import handle_send_request  # noqa: E402
from notification_relay.bootstrap import build_services, configure_logging  # noqa: E402
from notification_relay.config import RelayConfig  # noqa: E402
from notification_relay.types import Channel, ProviderResult  # noqa: E402


def main() -> int:
    args = parse_args()
    configure_logging("INFO")
    config = RelayConfig.from_env(
        {
            "RELAY_PROVIDER": "console",
            "FROM_EMAIL": "relay@example.com",
            "FROM_PHONE_NUMBER": "+15555550111",
            "RELAY_BASE_DELAY_SECONDS": "0.1",
        }
    )
    sms_calls = {"count": 0}

    def flaky_sms(*, sender: str, to_phone_e164: str, message: str) -> ProviderResult:
        sms_calls["count"] += 1
        if sms_calls["count"] == 1:
            return ProviderResult.transient_failure("simulated provider timeout")
        return send_sms_via_console(sender=sender, to_phone_e164=to_phone_e164, message=message)

    services = build_services(config, send_email=send_email_via_console, send_sms=flaky_sms)
    requests = load_requests(args.payload_file)

    print("")
    print("[SUMMARY]")
    for channel_name, body in requests:
        channel = Channel(channel_name)
        status_code, response = handle_send_request(services, channel, json.dumps(body))
        print(
            f"channel={channel.value} http={status_code} status={response['status']} "
            f"attempts={response['attempts']} replayed={response['replayed']} "
            f"error={response['error']}"
        )
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Execute the relay send pipeline with sample requests."
    )
    parser.add_argument(
        "--payload-file",
        type=Path,
        default=None,
        help="Optional JSON file: list of [channel, body] pairs.",
    )
    return parser.parse_args()


def load_requests(payload_file: Path | None) -> list[tuple[str, dict[str, Any]]]:
    if payload_file is None:
        return sample_requests()
    with payload_file.open("r", encoding="utf-8") as file_handle:
        return [(str(channel), dict(body)) for channel, body in json.load(file_handle)]


def sample_requests() -> list[tuple[str, dict[str, Any]]]:
    email = {
        "to": ["User@Example.com"],
        "email": "user@example.com",
        "cc": ["ops@example.com"],
        "message": "Your appointment is confirmed.",
    }
    sms = {"phoneNumber": "+1 (555) 123-4567", "message": "Hi"}
    return [
        ("email", email),
        ("sms", sms),
        # Same content again: replayed from the ledger, no provider call.
        ("sms", sms),
        ("email", {"to": [], "message": "nobody to send to"}),
    ]


if __name__ == "__main__":
    sys.exit(main())
