"""Application orchestration for one send request.

Mental model refresher:
- Application layer coordinates use-case flow across domain modules.
- In this project it:
  1) validates the raw request into an envelope
  2) dispatches it through the idempotent pipeline
  3) copies the terminal record to the outbox
  4) returns a plain result dictionary the HTTP adapter maps to a status code
"""

from __future__ import annotations

import logging
from typing import Any

from ..domain.envelope import validate_request
from ..errors import StorageUnavailableError, ValidationError
from ..types import Channel, RelayResult
from .dispatch import DispatchPipeline
from .outbox import OutboxRecorder

logger = logging.getLogger(__name__)


def relay_notification(
    raw: Any,
    *,
    channel: Channel | str,
    pipeline: DispatchPipeline,
    recorder: OutboxRecorder,
    idempotency_key: str | None = None,
) -> RelayResult:
    """Run the send use-case for one request body.

    Result `status` is one of `sent`, `pending`, `failed`, `invalid` or
    `record_failed` (terminal outcome reached but the outbox write failed).
    """
    try:
        envelope = validate_request(channel, raw, idempotency_key=idempotency_key)
    except ValidationError as exc:
        logger.info("[RELAY] channel=%s status=invalid field=%s reason=%s", channel, exc.field, exc.reason)
        return {
            "status": "invalid",
            "channel": str(getattr(channel, "value", channel)),
            "idempotency_key": None,
            "record": None,
            "error": exc.to_dict(),
            "replayed": False,
            "dispatch_status": None,
            "provider_calls": 0,
        }

    outcome = pipeline.send(envelope)
    record_document = outcome.record.to_document() if outcome.record is not None else None
    status = outcome.status.value
    error: Any = outcome.error

    # Replays were already copied to the outbox by the request that completed them.
    if outcome.record is not None and outcome.record.is_terminal and not outcome.replayed:
        try:
            recorder.record(outcome.record)
        except StorageUnavailableError as exc:
            logger.error(
                "[RELAY] key=%s record_id=%s status=record_failed dispatch_status=%s error=%s",
                envelope.idempotency_key,
                outcome.record.id,
                outcome.status.value,
                exc,
            )
            status = "record_failed"
            error = f"outbox write failed: {exc}"

    return {
        "status": status,
        "channel": envelope.channel.value,
        "idempotency_key": envelope.idempotency_key,
        "record": record_document,
        "error": error,
        "replayed": outcome.replayed,
        "dispatch_status": outcome.status.value,
        "provider_calls": outcome.provider_calls,
    }
