"""Process configuration, read from environment variables once at startup.

Missing sender identity or provider credentials raise `ConfigurationError`
here, before any request is served.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping

from .application.dispatch import RetryPolicy
from .errors import ConfigurationError
from .types import Channel

PROVIDER_MODES = {"live", "console"}
STORE_BACKENDS = {"memory", "redis"}


@dataclass(frozen=True)
class MailgunSettings:
    api_key: str
    domain: str
    base_url: str = "https://api.mailgun.net"
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class TwilioSettings:
    account_sid: str
    auth_token: str
    base_url: str = "https://api.twilio.com"
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class RelayConfig:
    channels: frozenset[Channel]
    provider_mode: str
    from_email: str | None
    from_phone: str | None
    mailgun: MailgunSettings | None
    twilio: TwilioSettings | None
    retry_policy: RetryPolicy
    throttle_limit: int = 0
    throttle_window_seconds: int = 60
    store_backend: str = "memory"
    redis_url: str | None = None
    redis_key_prefix: str = "relay"
    inbound_dedupe_enabled: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        sending: bool = True,
    ) -> RelayConfig:
        """Read configuration from `environ` (default `os.environ`).

        With `sending=False` (the inbound worker) sender identity and provider
        credentials are neither read nor required.
        """
        env = os.environ if environ is None else environ

        channels = _channels(env)
        provider_mode = _choice(env, "RELAY_PROVIDER", PROVIDER_MODES, default="live")
        live = sending and provider_mode == "live"
        sends_email = sending and Channel.EMAIL in channels
        sends_sms = sending and Channel.SMS in channels

        from_email = required_env(env, "FROM_EMAIL") if sends_email else None
        from_phone = required_env(env, "FROM_PHONE_NUMBER") if sends_sms else None

        mailgun = None
        if live and sends_email:
            mailgun = MailgunSettings(
                api_key=required_env(env, "MAILGUN_API_KEY"),
                domain=required_env(env, "MAILGUN_DOMAIN"),
                base_url=env.get("MAILGUN_API_BASE_URL", "https://api.mailgun.net").rstrip("/"),
                timeout_seconds=env_float(env, "MAILGUN_TIMEOUT_SECONDS", 10.0),
            )

        twilio = None
        if live and sends_sms:
            twilio = TwilioSettings(
                account_sid=required_env(env, "TWILIO_ACCOUNT_SID"),
                auth_token=required_env(env, "TWILIO_AUTH_TOKEN"),
                base_url=env.get("TWILIO_API_BASE_URL", "https://api.twilio.com").rstrip("/"),
                timeout_seconds=env_float(env, "TWILIO_TIMEOUT_SECONDS", 10.0),
            )

        try:
            retry_policy = RetryPolicy(
                max_attempts=env_int(env, "RELAY_MAX_ATTEMPTS", 3),
                base_delay_seconds=env_float(env, "RELAY_BASE_DELAY_SECONDS", 0.5),
                max_delay_seconds=env_float(env, "RELAY_MAX_DELAY_SECONDS", 8.0),
                max_elapsed_seconds=env_float(env, "RELAY_MAX_ELAPSED_SECONDS", 30.0),
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid retry policy: {exc}") from exc

        store_backend = _choice(env, "RELAY_STORE", STORE_BACKENDS, default="memory")
        redis_url = required_env(env, "REDIS_URL") if store_backend == "redis" else None

        return cls(
            channels=channels,
            provider_mode=provider_mode,
            from_email=from_email,
            from_phone=from_phone,
            mailgun=mailgun,
            twilio=twilio,
            retry_policy=retry_policy,
            throttle_limit=env_int(env, "RELAY_THROTTLE_LIMIT", 0),
            throttle_window_seconds=env_int(env, "RELAY_THROTTLE_WINDOW_SECONDS", 60),
            store_backend=store_backend,
            redis_url=redis_url,
            redis_key_prefix=env.get("REDIS_KEY_PREFIX", "relay").strip() or "relay",
            inbound_dedupe_enabled=env_bool(env, "INBOUND_DEDUPE_ENABLED", default=False),
            log_level=env.get("RELAY_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )


def load_env_file(path: Path) -> None:
    """Load KEY=VALUE lines into os.environ without overriding existing values."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        text = line.strip()
        if not text or text.startswith("#") or "=" not in text:
            continue
        key, value = text.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue
        if value.startswith(("'", '"')) and value.endswith(("'", '"')) and len(value) >= 2:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def required_env(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if value is None or not value.strip():
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value.strip()


def env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {raw!r}")


def env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {name}: {raw!r}") from None


def env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        raise ConfigurationError(f"Invalid number for {name}: {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{name} must be >= 0")
    return value


def _choice(env: Mapping[str, str], name: str, allowed: set[str], *, default: str) -> str:
    value = env.get(name, default).strip().lower() or default
    if value not in allowed:
        raise ConfigurationError(f"{name} must be one of {sorted(allowed)}, got {value!r}")
    return value


def _channels(env: Mapping[str, str]) -> frozenset[Channel]:
    raw = env.get("RELAY_CHANNELS", "email,sms")
    names = [item.strip().lower() for item in raw.split(",") if item.strip()]
    if not names:
        raise ConfigurationError("RELAY_CHANNELS must include at least one channel")
    try:
        return frozenset(Channel(name) for name in names)
    except ValueError:
        raise ConfigurationError(f"Invalid RELAY_CHANNELS value: {raw!r}") from None
