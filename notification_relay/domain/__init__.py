"""Domain layer: envelope rules and durable record types."""

from .envelope import (
    DEFAULT_SUBJECT,
    Envelope,
    derive_idempotency_key,
    validate_email_request,
    validate_request,
    validate_sms_request,
)
from .records import DispatchOutcome, DispatchRecord, DispatchStatus, InboundEvent

__all__ = [
    "DEFAULT_SUBJECT",
    "DispatchOutcome",
    "DispatchRecord",
    "DispatchStatus",
    "Envelope",
    "InboundEvent",
    "derive_idempotency_key",
    "validate_email_request",
    "validate_request",
    "validate_sms_request",
]
