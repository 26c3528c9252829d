"""Envelope validation for outbound email and SMS requests.

Mental model refresher:
- Domain modules hold channel rules.
- This module decides whether a request is sendable at all and what the
  canonical envelope looks like:
  - who are the recipients, after trimming, case-folding and dedupe?
  - is there a body?
  - which idempotency key identifies this logical send?
- It never calls a provider and never touches storage.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import json
import re
from email.utils import parseaddr
from typing import Any, Iterable

from ..errors import ValidationError
from ..types import Channel, Payload

DEFAULT_SUBJECT = "No Subject"

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-\.\(\)]")


@dataclass(frozen=True)
class Envelope:
    channel: Channel
    recipients: tuple[str, ...]
    body: str
    idempotency_key: str
    cc: tuple[str, ...] = ()
    bcc: tuple[str, ...] = ()
    subject: str | None = None


def validate_request(
    channel: Channel | str,
    raw: Any,
    *,
    idempotency_key: str | None = None,
) -> Envelope:
    """Validate a channel-tagged request body into an `Envelope`."""
    try:
        resolved = Channel(channel)
    except ValueError:
        raise ValidationError("channel", f"unsupported channel {channel!r}") from None

    if resolved is Channel.EMAIL:
        return validate_email_request(raw, idempotency_key=idempotency_key)
    return validate_sms_request(raw, idempotency_key=idempotency_key)


def validate_email_request(raw: Any, *, idempotency_key: str | None = None) -> Envelope:
    """Normalize an email request.

    The legacy single-address `email` field is merged into `to` rather than
    rejected. `cc`/`bcc` entries already addressed in a wider field are dropped.
    """
    payload = _as_payload(raw)

    to = _address_list(payload.get("to"), "to")
    legacy = _address_list(payload.get("email"), "email")
    recipients = _dedupe(
        [
            *(_normalize_email(item, "to") for item in to),
            *(_normalize_email(item, "email") for item in legacy),
        ]
    )
    if not recipients:
        raise ValidationError("to", "at least one recipient is required")

    cc = _dedupe(_normalize_email(item, "cc") for item in _address_list(payload.get("cc"), "cc"))
    cc = tuple(item for item in cc if item not in recipients)
    bcc = _dedupe(
        _normalize_email(item, "bcc") for item in _address_list(payload.get("bcc"), "bcc")
    )
    bcc = tuple(item for item in bcc if item not in recipients and item not in cc)

    subject = _as_optional_str(payload.get("subject"), "subject") or DEFAULT_SUBJECT
    body = _as_required_body(payload.get("message"))

    key = _resolve_idempotency_key(
        idempotency_key,
        payload,
        channel=Channel.EMAIL,
        recipients=recipients,
        cc=cc,
        bcc=bcc,
        subject=subject,
        body=body,
    )
    return Envelope(
        channel=Channel.EMAIL,
        recipients=recipients,
        cc=cc,
        bcc=bcc,
        subject=subject,
        body=body,
        idempotency_key=key,
    )


def validate_sms_request(raw: Any, *, idempotency_key: str | None = None) -> Envelope:
    """Normalize an SMS request. Exactly one destination number per message."""
    payload = _as_payload(raw)

    numbers = _address_list(payload.get("phoneNumber"), "phoneNumber")
    recipients = _dedupe(_normalize_phone(item) for item in numbers)
    if not recipients:
        raise ValidationError("phoneNumber", "a destination phone number is required")
    if len(recipients) > 1:
        raise ValidationError("phoneNumber", "exactly one phone number per message")

    body = _as_required_body(payload.get("message"))

    key = _resolve_idempotency_key(
        idempotency_key,
        payload,
        channel=Channel.SMS,
        recipients=recipients,
        cc=(),
        bcc=(),
        subject=None,
        body=body,
    )
    return Envelope(
        channel=Channel.SMS,
        recipients=recipients,
        body=body,
        idempotency_key=key,
    )


def derive_idempotency_key(
    *,
    channel: Channel,
    recipients: Iterable[str],
    body: str,
    subject: str | None = None,
    cc: Iterable[str] = (),
    bcc: Iterable[str] = (),
) -> str:
    """Stable SHA-256 over the canonical request content."""
    canonical = json.dumps(
        {
            "channel": channel.value,
            "recipients": list(recipients),
            "cc": list(cc),
            "bcc": list(bcc),
            "subject": subject,
            "body": body,
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _resolve_idempotency_key(
    supplied: str | None,
    payload: Payload,
    *,
    channel: Channel,
    recipients: tuple[str, ...],
    cc: tuple[str, ...],
    bcc: tuple[str, ...],
    subject: str | None,
    body: str,
) -> str:
    key = _as_optional_str(supplied, "idempotencyKey") or _as_optional_str(
        payload.get("idempotencyKey"), "idempotencyKey"
    )
    if key:
        if len(key) > 200:
            raise ValidationError("idempotencyKey", "must be at most 200 characters")
        return key
    return derive_idempotency_key(
        channel=channel, recipients=recipients, cc=cc, bcc=bcc, subject=subject, body=body
    )


def _as_payload(raw: Any) -> Payload:
    if not isinstance(raw, dict):
        raise ValidationError("body", "request body must be a JSON object")
    return raw


def _address_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        items: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ValidationError(field_name, "entries must be strings")
            if item.strip():
                items.append(item)
        return items
    raise ValidationError(field_name, "must be a string or a list of strings")


def _normalize_email(value: str, field_name: str) -> str:
    text = value.strip()
    _display_name, address = parseaddr(text)
    address = address.strip().casefold()
    if not _EMAIL_PATTERN.match(address):
        raise ValidationError(field_name, f"invalid email address {text!r}")
    return address


def _normalize_phone(value: str) -> str:
    text = _PHONE_SEPARATORS.sub("", value.strip())
    if not _E164_PATTERN.match(text):
        raise ValidationError("phoneNumber", f"not an E.164 phone number: {value.strip()!r}")
    return text


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return tuple(seen)


def _as_required_body(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("message", "message body is required")
    return value


def _as_optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")
    text = value.strip()
    return text or None
