#!/usr/bin/env python3
"""Serve the send-email / send-SMS HTTP endpoints with uvicorn."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import uvicorn

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from notification_relay.adapters.http_app import create_app_from_env  # noqa: E402
from notification_relay.config import load_env_file  # noqa: E402


def main() -> int:
    args = parse_args()
    load_env_file(REPO_ROOT / ".env")
    app = create_app_from_env()
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the notification relay HTTP API.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(main())
