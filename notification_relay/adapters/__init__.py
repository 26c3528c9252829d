"""Adapter layer: stores, provider senders and the queue consumer handler.

The HTTP app (`adapters.http_app`) and the Kafka runtime
(`adapters.kafka_runtime`) are imported by their module paths. The HTTP app
depends on `bootstrap`, which depends on this package.
"""

from .consumer_handler import handle_batch, handle_message
from .fake_senders import send_email_via_console, send_sms_via_console
from .real_senders import (
    make_mailgun_email_sender,
    make_twilio_sms_sender,
    send_email_via_mailgun,
    send_sms_via_twilio,
)
from .stores import InMemoryStore, RedisStore

__all__ = [
    "InMemoryStore",
    "RedisStore",
    "handle_batch",
    "handle_message",
    "make_mailgun_email_sender",
    "make_twilio_sms_sender",
    "send_email_via_console",
    "send_email_via_mailgun",
    "send_sms_via_console",
    "send_sms_via_twilio",
]
