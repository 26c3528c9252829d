"""Real provider adapters for production sending.

Mental model refresher:
- This module is an outbound adapter.
- It integrates with external providers over their REST APIs.
- Application code only sees simple callable senders returning
  `ProviderResult`; HTTP 429, 5xx, timeouts and network errors are transient,
  every other rejection is permanent.
"""

from __future__ import annotations

import base64
from functools import partial
import json
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from ..config import MailgunSettings, TwilioSettings
from ..domain.envelope import Envelope
from ..types import ProviderResult, SendEmailFn, SendSMSFn

_DETAIL_LIMIT = 300


def send_email_via_mailgun(
    settings: MailgunSettings,
    *,
    sender: str,
    envelope: Envelope,
) -> ProviderResult:
    """Send one email (all recipients in one call) via the Mailgun REST API."""
    encoded_domain = urllib.parse.quote(settings.domain, safe="")
    endpoint = f"{settings.base_url}/v3/{encoded_domain}/messages"
    fields: list[tuple[str, str]] = [("from", sender)]
    fields.extend(("to", item) for item in envelope.recipients)
    fields.extend(("cc", item) for item in envelope.cc)
    fields.extend(("bcc", item) for item in envelope.bcc)
    fields.append(("subject", envelope.subject or ""))
    fields.append(("text", envelope.body))
    payload = urllib.parse.urlencode(fields).encode("utf-8")

    request = urllib.request.Request(endpoint, data=payload, method="POST")
    request.add_header("Authorization", _basic_auth_header("api", settings.api_key))
    request.add_header("Content-Type", "application/x-www-form-urlencoded")

    return _post("Mailgun email send", request, settings.timeout_seconds, id_field="id")


def send_sms_via_twilio(
    settings: TwilioSettings,
    *,
    sender: str,
    to_phone_e164: str,
    message: str,
) -> ProviderResult:
    """Send one SMS via the Twilio REST API."""
    endpoint = f"{settings.base_url}/2010-04-01/Accounts/{settings.account_sid}/Messages.json"
    payload = urllib.parse.urlencode(
        {"To": to_phone_e164, "From": sender, "Body": message}
    ).encode("utf-8")

    request = urllib.request.Request(endpoint, data=payload, method="POST")
    request.add_header("Authorization", _basic_auth_header(settings.account_sid, settings.auth_token))
    request.add_header("Content-Type", "application/x-www-form-urlencoded")

    return _post("Twilio SMS send", request, settings.timeout_seconds, id_field="sid")


def make_mailgun_email_sender(settings: MailgunSettings) -> SendEmailFn:
    return partial(send_email_via_mailgun, settings)


def make_twilio_sms_sender(settings: TwilioSettings) -> SendSMSFn:
    return partial(send_sms_via_twilio, settings)


def _post(
    label: str,
    request: urllib.request.Request,
    timeout_seconds: float,
    *,
    id_field: str,
) -> ProviderResult:
    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
            status = int(response.getcode())
            body = response.read()
    except urllib.error.HTTPError as exc:
        details = exc.read().decode("utf-8", errors="replace")
        error = f"{label} failed HTTP {exc.code}: {details[:_DETAIL_LIMIT]}"
        if _is_transient_status(exc.code):
            return ProviderResult.transient_failure(error)
        return ProviderResult.permanent_failure(error)
    except urllib.error.URLError as exc:
        return ProviderResult.transient_failure(f"{label} failed: {exc.reason}")
    except TimeoutError as exc:
        return ProviderResult.transient_failure(f"{label} timed out: {exc}")

    if status < 200 or status >= 300:
        error = f"{label} failed with status {status}"
        if _is_transient_status(status):
            return ProviderResult.transient_failure(error)
        return ProviderResult.permanent_failure(error)

    document = _decode_response(body)
    provider_id = document.get(id_field)
    return ProviderResult.ok(
        provider_id=str(provider_id) if provider_id is not None else None,
        response=document,
    )


def _is_transient_status(status: int) -> bool:
    return status == 429 or status >= 500


def _decode_response(body: bytes) -> dict[str, Any]:
    try:
        parsed = json.loads(body.decode("utf-8", errors="replace") or "{}")
    except ValueError:
        return {"raw": body.decode("utf-8", errors="replace")[:_DETAIL_LIMIT]}
    return parsed if isinstance(parsed, dict) else {"raw": parsed}


def _basic_auth_header(username: str, password: str) -> str:
    token = f"{username}:{password}".encode("utf-8")
    encoded = base64.b64encode(token).decode("ascii")
    return f"Basic {encoded}"
