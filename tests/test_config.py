from __future__ import annotations

import os
from pathlib import Path
import tempfile
import unittest
from unittest import mock

from notification_relay.config import RelayConfig, env_bool, env_float, env_int, load_env_file
from notification_relay.errors import ConfigurationError
from notification_relay.types import Channel


def live_env(**overrides: str) -> dict[str, str]:
    env = {
        "FROM_EMAIL": "relay@example.com",
        "FROM_PHONE_NUMBER": "+15550000000",
        "MAILGUN_API_KEY": "key-123",
        "MAILGUN_DOMAIN": "mg.example.com",
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "token",
    }
    env.update(overrides)
    return env


class RelayConfigTests(unittest.TestCase):
    def test_defaults_for_live_mode(self) -> None:
        config = RelayConfig.from_env(live_env())

        self.assertEqual(config.channels, frozenset({Channel.EMAIL, Channel.SMS}))
        self.assertEqual(config.provider_mode, "live")
        self.assertEqual(config.from_email, "relay@example.com")
        self.assertEqual(config.from_phone, "+15550000000")
        assert config.mailgun is not None and config.twilio is not None
        self.assertEqual(config.mailgun.base_url, "https://api.mailgun.net")
        self.assertEqual(config.twilio.account_sid, "AC123")
        self.assertEqual(config.retry_policy.max_attempts, 3)
        self.assertEqual(config.store_backend, "memory")
        self.assertFalse(config.inbound_dedupe_enabled)
        self.assertEqual(config.throttle_limit, 0)

    def test_missing_sender_identity_is_fatal(self) -> None:
        env = live_env()
        del env["FROM_PHONE_NUMBER"]

        with self.assertRaises(ConfigurationError) as ctx:
            RelayConfig.from_env(env)

        self.assertIn("FROM_PHONE_NUMBER", str(ctx.exception))

    def test_missing_provider_credentials_are_fatal_in_live_mode(self) -> None:
        env = live_env()
        del env["MAILGUN_API_KEY"]

        with self.assertRaises(ConfigurationError):
            RelayConfig.from_env(env)

    def test_console_mode_needs_no_credentials(self) -> None:
        config = RelayConfig.from_env(
            {
                "RELAY_PROVIDER": "console",
                "FROM_EMAIL": "relay@example.com",
                "FROM_PHONE_NUMBER": "+15550000000",
            }
        )

        self.assertEqual(config.provider_mode, "console")
        self.assertIsNone(config.mailgun)
        self.assertIsNone(config.twilio)

    def test_ingestion_only_config_needs_no_sender_settings(self) -> None:
        config = RelayConfig.from_env(
            {"RELAY_PROVIDER": "live", "INBOUND_DEDUPE_ENABLED": "true"},
            sending=False,
        )

        self.assertIsNone(config.from_email)
        self.assertIsNone(config.from_phone)
        self.assertIsNone(config.mailgun)
        self.assertIsNone(config.twilio)
        self.assertTrue(config.inbound_dedupe_enabled)

    def test_single_channel_only_requires_its_own_settings(self) -> None:
        config = RelayConfig.from_env(
            {
                "RELAY_CHANNELS": "sms",
                "FROM_PHONE_NUMBER": "+15550000000",
                "TWILIO_ACCOUNT_SID": "AC123",
                "TWILIO_AUTH_TOKEN": "token",
            }
        )

        self.assertEqual(config.channels, frozenset({Channel.SMS}))
        self.assertIsNone(config.from_email)
        self.assertIsNone(config.mailgun)

    def test_unknown_channel_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            RelayConfig.from_env(live_env(RELAY_CHANNELS="email,fax"))

    def test_unknown_provider_mode_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            RelayConfig.from_env(live_env(RELAY_PROVIDER="carrier-pigeon"))

    def test_retry_and_throttle_overrides(self) -> None:
        config = RelayConfig.from_env(
            live_env(
                RELAY_MAX_ATTEMPTS="5",
                RELAY_BASE_DELAY_SECONDS="0.1",
                RELAY_MAX_ELAPSED_SECONDS="12",
                RELAY_THROTTLE_LIMIT="10",
                RELAY_THROTTLE_WINDOW_SECONDS="30",
            )
        )

        self.assertEqual(config.retry_policy.max_attempts, 5)
        self.assertEqual(config.retry_policy.base_delay_seconds, 0.1)
        self.assertEqual(config.retry_policy.max_elapsed_seconds, 12.0)
        self.assertEqual(config.throttle_limit, 10)
        self.assertEqual(config.throttle_window_seconds, 30)

    def test_invalid_retry_policy_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            RelayConfig.from_env(live_env(RELAY_MAX_ATTEMPTS="0"))

    def test_redis_store_requires_url(self) -> None:
        with self.assertRaises(ConfigurationError):
            RelayConfig.from_env(live_env(RELAY_STORE="redis"))

        config = RelayConfig.from_env(
            live_env(RELAY_STORE="redis", REDIS_URL="redis://localhost:6379/0", REDIS_KEY_PREFIX="n")
        )
        self.assertEqual(config.redis_url, "redis://localhost:6379/0")
        self.assertEqual(config.redis_key_prefix, "n")

    def test_reads_process_environment_by_default(self) -> None:
        with mock.patch.dict(os.environ, live_env(INBOUND_DEDUPE_ENABLED="yes"), clear=True):
            config = RelayConfig.from_env()

        self.assertTrue(config.inbound_dedupe_enabled)


class EnvHelperTests(unittest.TestCase):
    def test_env_bool(self) -> None:
        self.assertTrue(env_bool({"X": "On"}, "X", default=False))
        self.assertFalse(env_bool({"X": "0"}, "X", default=True))
        self.assertTrue(env_bool({}, "X", default=True))
        with self.assertRaises(ConfigurationError):
            env_bool({"X": "maybe"}, "X", default=False)

    def test_env_int_and_float(self) -> None:
        self.assertEqual(env_int({"X": " 7 "}, "X", 1), 7)
        self.assertEqual(env_int({"X": ""}, "X", 1), 1)
        self.assertEqual(env_float({"X": "2.5"}, "X", 1.0), 2.5)
        with self.assertRaises(ConfigurationError):
            env_int({"X": "seven"}, "X", 1)
        with self.assertRaises(ConfigurationError):
            env_float({"X": "-1"}, "X", 1.0)

    def test_load_env_file_does_not_override_existing_values(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / ".env"
            path.write_text(
                "# comment\nFROM_EMAIL='file@example.com'\nRELAY_PROVIDER=console\nnot a pair\n",
                encoding="utf-8",
            )
            with mock.patch.dict(os.environ, {"RELAY_PROVIDER": "live"}, clear=True):
                load_env_file(path)
                self.assertEqual(os.environ["FROM_EMAIL"], "file@example.com")
                self.assertEqual(os.environ["RELAY_PROVIDER"], "live")

    def test_load_env_file_ignores_missing_file(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            load_env_file(Path("/nonexistent/.env"))
            self.assertEqual(dict(os.environ), {})


if __name__ == "__main__":
    unittest.main()
