"""HTTP entry points for send-email and send-SMS requests.

Mental model refresher:
- This is the controller-like edge for synchronous callers.
- Flow:
  request body -> JSON decode -> relay use-case -> status code + JSON body
- Status mapping: 200 sent, 202 pending (same idempotency key still in
  flight; retry later), 400 invalid request, 500 provider or storage failure.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..application.relay import relay_notification
from ..bootstrap import RelayServices, build_services, configure_logging
from ..config import RelayConfig
from ..types import Channel, RelayResult

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"

_STATUS_CODES = {
    "sent": 200,
    "pending": 202,
    "invalid": 400,
    "failed": 500,
    "record_failed": 500,
}


def handle_send_request(
    services: RelayServices,
    channel: Channel,
    body: bytes | str,
    *,
    idempotency_key: str | None = None,
) -> tuple[int, dict[str, Any]]:
    """Decode one request body and run the relay use-case for it."""
    try:
        raw = _decode_json(body)
    except ValueError as exc:
        logger.info("[HTTP] channel=%s status=400 reason=malformed_json", channel.value)
        return 400, {
            "status": "invalid",
            "error": {"field": "body", "reason": f"malformed JSON: {exc}"},
        }

    result = relay_notification(
        raw,
        channel=channel,
        pipeline=services.pipeline,
        recorder=services.recorder,
        idempotency_key=idempotency_key,
    )
    status_code = status_code_for(result)
    logger.info(
        "[HTTP] channel=%s status=%s result=%s key=%s",
        channel.value,
        status_code,
        result["status"],
        result["idempotency_key"],
    )
    return status_code, response_body(result)


def status_code_for(result: RelayResult) -> int:
    return _STATUS_CODES.get(str(result.get("status")), 500)


def response_body(result: RelayResult) -> dict[str, Any]:
    record = result.get("record") or {}
    body: dict[str, Any] = {
        "status": result["status"],
        "channel": result["channel"],
        "idempotencyKey": result["idempotency_key"],
        "recordId": record.get("id"),
        "attempts": record.get("attempts"),
        "providerId": record.get("providerId"),
        "replayed": result["replayed"],
        "error": result["error"],
    }
    if result["status"] == "pending":
        body["retry"] = True
    return body


def create_app(services: RelayServices) -> FastAPI:
    app = FastAPI(title="Notification Relay")

    async def _send(channel: Channel, request: Request) -> JSONResponse:
        body = await request.body()
        status_code, payload = await run_in_threadpool(
            handle_send_request,
            services,
            channel,
            body,
            idempotency_key=request.headers.get(IDEMPOTENCY_HEADER),
        )
        return JSONResponse(status_code=status_code, content=payload)

    if Channel.EMAIL in services.config.channels:

        @app.post("/api/email")
        async def send_email(request: Request) -> JSONResponse:
            return await _send(Channel.EMAIL, request)

    if Channel.SMS in services.config.channels:

        @app.post("/api/sms")
        async def send_sms(request: Request) -> JSONResponse:
            return await _send(Channel.SMS, request)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def create_app_from_env() -> FastAPI:
    """Build the app from environment configuration; fails fast on bad config."""
    config = RelayConfig.from_env()
    configure_logging(config.log_level)
    return create_app(build_services(config))


def _decode_json(body: bytes | str) -> Any:
    text = body.decode("utf-8") if isinstance(body, bytes) else body
    if not text.strip():
        raise ValueError("empty request body")
    return json.loads(text)
