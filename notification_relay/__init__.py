"""Notification relay: idempotent email/SMS dispatch and inbound SMS ingestion."""

from .application import (
    DispatchPipeline,
    IdempotencyLedger,
    InboundIngestor,
    OutboxRecorder,
    RetryPolicy,
    Throttle,
    relay_notification,
)
from .bootstrap import RelayServices, build_services
from .config import RelayConfig
from .domain import (
    DispatchOutcome,
    DispatchRecord,
    DispatchStatus,
    Envelope,
    InboundEvent,
    validate_email_request,
    validate_request,
    validate_sms_request,
)
from .errors import ConfigurationError, RelayError, StorageUnavailableError, ValidationError
from .types import Channel, ProviderResult

__all__ = [
    "Channel",
    "ConfigurationError",
    "DispatchOutcome",
    "DispatchPipeline",
    "DispatchRecord",
    "DispatchStatus",
    "Envelope",
    "IdempotencyLedger",
    "InboundEvent",
    "InboundIngestor",
    "OutboxRecorder",
    "ProviderResult",
    "RelayConfig",
    "RelayError",
    "RelayServices",
    "RetryPolicy",
    "StorageUnavailableError",
    "Throttle",
    "ValidationError",
    "build_services",
    "relay_notification",
    "validate_email_request",
    "validate_request",
    "validate_sms_request",
]
