"""Fake sender adapters for local smoke tests.

Mental model refresher:
- This is outbound adapter code.
- In production, provider calls live in `real_senders.py`.
- The pipeline calls these through injected functions; it does not know which
  provider implementation is underneath.
"""

from __future__ import annotations

import logging
import uuid

from ..domain.envelope import Envelope
from ..types import ProviderResult

logger = logging.getLogger(__name__)


def send_email_via_console(*, sender: str, envelope: Envelope) -> ProviderResult:
    logger.info(
        "[EMAIL] from=%s to=%s cc=%s bcc=%s subject=%s body_chars=%s",
        sender,
        ",".join(envelope.recipients),
        ",".join(envelope.cc),
        ",".join(envelope.bcc),
        envelope.subject,
        len(envelope.body),
    )
    return ProviderResult.ok(provider_id=f"console-{uuid.uuid4().hex[:12]}", response={"console": True})


def send_sms_via_console(*, sender: str, to_phone_e164: str, message: str) -> ProviderResult:
    logger.info("[SMS] from=%s to=%s message_chars=%s", sender, to_phone_e164, len(message))
    return ProviderResult.ok(provider_id=f"console-{uuid.uuid4().hex[:12]}", response={"console": True})
