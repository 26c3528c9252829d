from __future__ import annotations

import json
import unittest
from unittest import mock

from notification_relay.adapters import kafka_runtime
from notification_relay.errors import ConfigurationError


class KafkaRuntimeHelperTests(unittest.TestCase):
    def test_serialize_payload_passes_strings_through(self) -> None:
        self.assertEqual(kafka_runtime._serialize_payload("not valid json"), b"not valid json")

    def test_serialize_payload_encodes_mappings_compactly(self) -> None:
        encoded = kafka_runtime._serialize_payload({"data": {"from": "+15551234567"}})

        self.assertEqual(encoded, b'{"data":{"from":"+15551234567"}}')

    def test_inbound_topic_defaults_when_unset_or_blank(self) -> None:
        with mock.patch.dict("os.environ", {}, clear=True):
            self.assertEqual(kafka_runtime._inbound_topic(), "inbound-sms")
        with mock.patch.dict("os.environ", {"KAFKA_TOPIC_INBOUND_SMS": "  "}, clear=True):
            self.assertEqual(kafka_runtime._inbound_topic(), kafka_runtime.DEFAULT_INBOUND_TOPIC)
        with mock.patch.dict("os.environ", {"KAFKA_TOPIC_INBOUND_SMS": "sms.in"}, clear=True):
            self.assertEqual(kafka_runtime._inbound_topic(), "sms.in")

    def test_bootstrap_servers_from_env_parses_csv(self) -> None:
        env = {"KAFKA_BOOTSTRAP_SERVERS": "localhost:9092, kafka:29092 "}
        with mock.patch.dict("os.environ", env, clear=True):
            servers = kafka_runtime._bootstrap_servers_from_env()
        self.assertEqual(servers, ["localhost:9092", "kafka:29092"])

    def test_bootstrap_servers_from_env_requires_value(self) -> None:
        with mock.patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(ConfigurationError):
                kafka_runtime._bootstrap_servers_from_env()

    def test_bootstrap_servers_from_env_rejects_only_commas(self) -> None:
        with mock.patch.dict("os.environ", {"KAFKA_BOOTSTRAP_SERVERS": " , ,"}, clear=True):
            with self.assertRaises(ConfigurationError):
                kafka_runtime._bootstrap_servers_from_env()

    def test_poll_timeout_must_be_positive(self) -> None:
        with mock.patch.dict("os.environ", {"KAFKA_POLL_TIMEOUT_SECONDS": "0"}, clear=True):
            with self.assertRaises(ConfigurationError):
                kafka_runtime._poll_timeout_ms_from_env()
        with mock.patch.dict("os.environ", {"KAFKA_POLL_TIMEOUT_SECONDS": "0.25"}, clear=True):
            self.assertEqual(kafka_runtime._poll_timeout_ms_from_env(), 250)

    def test_offset_and_metadata_prefers_three_arg_signature(self) -> None:
        calls: list[tuple[int, str, object | None]] = []

        def factory(offset: int, metadata: str, leader_epoch: object | None) -> tuple[int, str]:
            calls.append((offset, metadata, leader_epoch))
            return (offset, metadata)

        built = kafka_runtime._offset_and_metadata(factory, 99)
        self.assertEqual(built, (99, ""))
        self.assertEqual(calls, [(99, "", -1)])

    def test_offset_and_metadata_falls_back_to_two_arg_signature(self) -> None:
        calls: list[tuple[int, str]] = []

        def factory(offset: int, metadata: str) -> tuple[int, str]:
            calls.append((offset, metadata))
            return (offset, metadata)

        built = kafka_runtime._offset_and_metadata(factory, 42)
        self.assertEqual(built, (42, ""))
        self.assertEqual(calls, [(42, "")])

    def test_to_json_compatible_converts_non_json_types(self) -> None:
        value = {
            "raw_bytes": b"abc",
            "nested": {"items": [1, b"\xff", {"ok": True}]},
            "set_value": {"a", "b"},
            "object": object(),
        }

        converted = kafka_runtime._to_json_compatible(value)

        self.assertEqual(converted["raw_bytes"], "abc")
        self.assertEqual(converted["nested"]["items"][0], 1)
        self.assertEqual(converted["nested"]["items"][1], "\ufffd")
        self.assertIsInstance(converted["set_value"], list)
        self.assertIsInstance(converted["object"], str)

    def test_build_dlq_payload_includes_source_metadata(self) -> None:
        dlq_payload = kafka_runtime._build_dlq_payload(
            source_topic="inbound-sms",
            source_partition=0,
            source_offset=42,
            source_payload=b'{"data":{"body":"hi"}}',
            failure_reason="persist_failed: store down",
        )

        self.assertEqual(dlq_payload["event_type"], "inbound-sms.dlq")
        self.assertEqual(dlq_payload["failure_reason"], "persist_failed: store down")
        self.assertEqual(dlq_payload["source"], {"topic": "inbound-sms", "partition": 0, "offset": 42})
        self.assertEqual(dlq_payload["payload"], '{"data":{"body":"hi"}}')
        self.assertIn("failed_at", dlq_payload)
        # Must survive the DLQ producer's serializer.
        json.loads(kafka_runtime._serialize_json_object(dlq_payload))

    def test_close_quietly_swallows_close_errors(self) -> None:
        def broken_close() -> None:
            raise RuntimeError("already closed")

        with self.assertLogs("notification_relay.adapters.kafka_runtime", level="WARNING") as logs:
            kafka_runtime._close_quietly(broken_close, "consumer close")

        self.assertIn("consumer close failed", logs.output[0])


if __name__ == "__main__":
    unittest.main()
