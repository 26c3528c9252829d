"""Dispatch pipeline: reserve, call the provider, retry, record the outcome.

Mental model refresher:
- Application layer coordinates the use-case flow across domain rules,
  the idempotency ledger and the injected provider senders.
- It is the only place that decides whether a provider call is retried.
- Expected provider rejections come back as `ProviderResult` values; only a
  sender raising `TimeoutError`/`OSError` is folded into a transient result.
  Anything else a sender raises is a genuine fault and propagates.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import random
import time
from typing import Callable

from ..domain.envelope import Envelope
from ..domain.records import DispatchOutcome, DispatchRecord, DispatchStatus
from ..errors import StorageUnavailableError
from ..types import Channel, ClockFn, ProviderResult, SendEmailFn, SendSMSFn, SleepFn
from .ledger import IdempotencyLedger, ReservationKind
from .throttle import Throttle

STORAGE_UNAVAILABLE = "storage_unavailable"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0
    max_elapsed_seconds: float = 30.0
    jitter_seconds: float = 0.3

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("retry delays must be >= 0")
        if self.max_elapsed_seconds <= 0:
            raise ValueError("max_elapsed_seconds must be > 0")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following `attempt` (1-based), without jitter."""
        return min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)


class DispatchPipeline:
    def __init__(
        self,
        *,
        ledger: IdempotencyLedger,
        send_email: SendEmailFn,
        send_sms: SendSMSFn,
        sender_email: str | None,
        sender_phone: str | None,
        retry_policy: RetryPolicy | None = None,
        throttle: Throttle | None = None,
        sleep: SleepFn = time.sleep,
        clock: ClockFn = time.monotonic,
        jitter: Callable[[float, float], float] = random.uniform,
        logger: logging.Logger | None = None,
    ) -> None:
        self._ledger = ledger
        self._send_email = send_email
        self._send_sms = send_sms
        self._sender_email = sender_email
        self._sender_phone = sender_phone
        self._policy = retry_policy or RetryPolicy()
        self._throttle = throttle
        self._sleep = sleep
        self._clock = clock
        self._jitter = jitter
        self._logger = logger or logging.getLogger(__name__)

    def send(self, envelope: Envelope) -> DispatchOutcome:
        """Dispatch one envelope under its idempotency key."""
        try:
            reservation = self._ledger.reserve(envelope)
        except StorageUnavailableError as exc:
            self._logger.error(
                "[DISPATCH] key=%s channel=%s status=failed reason=%s error=%s",
                envelope.idempotency_key,
                envelope.channel.value,
                STORAGE_UNAVAILABLE,
                exc,
            )
            return DispatchOutcome(
                status=DispatchStatus.FAILED,
                record=None,
                error=f"{STORAGE_UNAVAILABLE}: {exc}",
            )

        if reservation.kind is ReservationKind.COMPLETED:
            return DispatchOutcome.from_record(reservation.record, replayed=True)
        if reservation.kind is ReservationKind.IN_FLIGHT:
            return DispatchOutcome(status=DispatchStatus.PENDING, record=reservation.record)

        return self._run(envelope, reservation.record)

    def _run(self, envelope: Envelope, record: DispatchRecord) -> DispatchOutcome:
        started = self._clock()
        provider_calls = 0
        attempt = 0

        while True:
            attempt += 1
            result, called = self._attempt(envelope)
            provider_calls += called
            try:
                record = self._ledger.record_attempt(record, error=result.error)
            except StorageUnavailableError as exc:
                return self._storage_failure(record, exc, provider_calls, result)

            if result.accepted:
                return self._finish(record, DispatchStatus.SENT, result, provider_calls)

            if not result.transient:
                self._logger.warning(
                    "[DISPATCH] key=%s attempt=%s permanent_failure error=%s",
                    envelope.idempotency_key,
                    attempt,
                    result.error,
                )
                break
            if attempt >= self._policy.max_attempts:
                break

            delay = self._policy.delay_for(attempt) + self._jitter(0, self._policy.jitter_seconds)
            elapsed = self._clock() - started
            if elapsed + delay > self._policy.max_elapsed_seconds:
                result = ProviderResult.transient_failure(
                    f"{result.error} (retry budget of "
                    f"{self._policy.max_elapsed_seconds:g}s exhausted)"
                )
                break

            self._logger.warning(
                "[RETRY] key=%s attempt=%s delay=%.2f error=%s",
                envelope.idempotency_key,
                attempt,
                delay,
                result.error,
            )
            self._sleep(delay)

        return self._finish(record, DispatchStatus.FAILED, result, provider_calls)

    def _attempt(self, envelope: Envelope) -> tuple[ProviderResult, int]:
        if self._throttle is not None:
            try:
                allowed = self._throttle.acquire()
            except StorageUnavailableError as exc:
                # Counter unreachable: fail closed without a provider call.
                return (
                    ProviderResult.permanent_failure(
                        f"{STORAGE_UNAVAILABLE}: throttle counter unavailable: {exc}"
                    ),
                    0,
                )
            if not allowed:
                return ProviderResult.transient_failure("throttled: send limit reached"), 0

        try:
            if envelope.channel is Channel.EMAIL:
                result = self._send_email(sender=self._sender_email, envelope=envelope)
            else:
                result = self._send_sms(
                    sender=self._sender_phone,
                    to_phone_e164=envelope.recipients[0],
                    message=envelope.body,
                )
        except (TimeoutError, OSError) as exc:
            return ProviderResult.transient_failure(f"{type(exc).__name__}: {exc}"), 1

        if not isinstance(result, ProviderResult):
            raise TypeError(
                f"{envelope.channel.value} sender returned {type(result).__name__}, "
                "expected ProviderResult"
            )
        return result, 1

    def _finish(
        self,
        record: DispatchRecord,
        status: DispatchStatus,
        result: ProviderResult,
        provider_calls: int,
    ) -> DispatchOutcome:
        try:
            finished = self._ledger.complete(
                record,
                status=status,
                error=result.error,
                provider_id=result.provider_id,
                provider_response=result.response,
            )
        except StorageUnavailableError as exc:
            return self._storage_failure(record, exc, provider_calls, result)

        self._logger.info(
            "[DISPATCH] key=%s channel=%s status=%s attempts=%s provider_calls=%s",
            finished.idempotency_key,
            finished.channel.value,
            finished.status.value,
            finished.attempts,
            provider_calls,
        )
        return DispatchOutcome.from_record(finished, provider_calls=provider_calls)

    def _storage_failure(
        self,
        record: DispatchRecord,
        exc: StorageUnavailableError,
        provider_calls: int,
        result: ProviderResult,
    ) -> DispatchOutcome:
        # The key stays pending in the ledger; later retries see it in flight.
        self._logger.error(
            "[DISPATCH] key=%s record_id=%s status=failed reason=%s "
            "provider_accepted=%s provider_id=%s error=%s",
            record.idempotency_key,
            record.id,
            STORAGE_UNAVAILABLE,
            result.accepted,
            result.provider_id,
            exc,
        )
        return DispatchOutcome(
            status=DispatchStatus.FAILED,
            record=record,
            error=f"{STORAGE_UNAVAILABLE}: {exc}",
            provider_calls=provider_calls,
        )
