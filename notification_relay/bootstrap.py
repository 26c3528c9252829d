"""Wiring: build the relay's services from configuration.

Each entry point (HTTP app, queue worker, demo scripts) builds one
`RelayServices` at startup and passes it down explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time

from .adapters.fake_senders import send_email_via_console, send_sms_via_console
from .adapters.real_senders import make_mailgun_email_sender, make_twilio_sms_sender
from .adapters.stores import InMemoryStore, RedisStore
from .application.dispatch import DispatchPipeline
from .application.ingest import InboundIngestor
from .application.ledger import IdempotencyLedger
from .application.outbox import OutboxRecorder
from .application.throttle import Throttle
from .config import RelayConfig
from .errors import ConfigurationError
from .types import Channel, ProviderResult, SendEmailFn, SendSMSFn, SleepFn, Store


@dataclass(frozen=True)
class RelayServices:
    config: RelayConfig
    store: Store
    ledger: IdempotencyLedger
    pipeline: DispatchPipeline
    recorder: OutboxRecorder
    ingestor: InboundIngestor


def build_store(config: RelayConfig) -> Store:
    if config.store_backend == "redis":
        if not config.redis_url:
            raise ConfigurationError("REDIS_URL is required when RELAY_STORE=redis")
        return RedisStore.from_url(config.redis_url, key_prefix=config.redis_key_prefix)
    return InMemoryStore()


def build_services(
    config: RelayConfig,
    *,
    store: Store | None = None,
    send_email: SendEmailFn | None = None,
    send_sms: SendSMSFn | None = None,
    sleep: SleepFn = time.sleep,
    logger: logging.Logger | None = None,
) -> RelayServices:
    store = store if store is not None else build_store(config)
    ledger = IdempotencyLedger(store, logger=logger)
    throttle = (
        Throttle(store, limit=config.throttle_limit, window_seconds=config.throttle_window_seconds)
        if config.throttle_limit > 0
        else None
    )
    pipeline = DispatchPipeline(
        ledger=ledger,
        send_email=send_email or _default_email_sender(config),
        send_sms=send_sms or _default_sms_sender(config),
        sender_email=config.from_email,
        sender_phone=config.from_phone,
        retry_policy=config.retry_policy,
        throttle=throttle,
        sleep=sleep,
        logger=logger,
    )
    return RelayServices(
        config=config,
        store=store,
        ledger=ledger,
        pipeline=pipeline,
        recorder=OutboxRecorder(store, logger=logger),
        ingestor=build_ingestor(config, store=store, logger=logger),
    )


def build_ingestor(
    config: RelayConfig,
    *,
    store: Store | None = None,
    logger: logging.Logger | None = None,
) -> InboundIngestor:
    """Ingestion-only wiring for the inbound worker; no senders are built."""
    return InboundIngestor(
        store if store is not None else build_store(config),
        dedupe_by_source_id=config.inbound_dedupe_enabled,
        logger=logger,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _default_email_sender(config: RelayConfig) -> SendEmailFn:
    if Channel.EMAIL not in config.channels:
        return _channel_disabled("email")
    if config.provider_mode == "console":
        return send_email_via_console
    if config.mailgun is None:
        raise ConfigurationError("Mailgun settings are required for live email sending")
    return make_mailgun_email_sender(config.mailgun)


def _default_sms_sender(config: RelayConfig) -> SendSMSFn:
    if Channel.SMS not in config.channels:
        return _channel_disabled("sms")
    if config.provider_mode == "console":
        return send_sms_via_console
    if config.twilio is None:
        raise ConfigurationError("Twilio settings are required for live SMS sending")
    return make_twilio_sms_sender(config.twilio)


def _channel_disabled(channel: str) -> SendEmailFn:
    def _send(**_kwargs: object) -> ProviderResult:
        return ProviderResult.permanent_failure(f"{channel} channel is disabled (RELAY_CHANNELS)")

    return _send
