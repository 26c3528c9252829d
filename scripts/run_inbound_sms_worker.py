#!/usr/bin/env python3
"""Run the Kafka worker that ingests inbound SMS events into the store.

Each record is committed once its event is persisted, including records whose
payload is not valid JSON. Records that cannot be persisted go to the DLQ.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from notification_relay.adapters.kafka_runtime import run_inbound_sms_worker_forever  # noqa: E402
from notification_relay.bootstrap import build_ingestor, configure_logging  # noqa: E402
from notification_relay.config import RelayConfig, load_env_file  # noqa: E402


def main() -> int:
    parse_args()
    load_env_file(REPO_ROOT / ".env")
    # Ingestion only: sender identity and provider credentials are not needed.
    config = RelayConfig.from_env(sending=False)
    configure_logging(config.log_level)
    return run_inbound_sms_worker_forever(build_ingestor(config))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run Kafka consumer loop for inbound SMS ingestion."
    )
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(main())
