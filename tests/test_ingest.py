from __future__ import annotations

import unittest

from notification_relay.adapters.stores import InMemoryStore
from notification_relay.application.ingest import INBOUND_COLLECTION, InboundIngestor


class InboundIngestorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.ids = iter(["evt-1", "evt-2", "evt-3"])
        self.ingestor = InboundIngestor(self.store, id_factory=lambda: next(self.ids))

    def test_extracts_data_member(self) -> None:
        event = self.ingestor.ingest('{"data":{"from":"+15551234567","body":"YES"}}')

        self.assertEqual(event.id, "evt-1")
        self.assertEqual(event.data, {"from": "+15551234567", "body": "YES"})
        self.assertIsNone(event.parse_error)
        stored = self.store.get(INBOUND_COLLECTION, "evt-1")
        assert stored is not None
        self.assertEqual(stored["message"], '{"data":{"from":"+15551234567","body":"YES"}}')
        self.assertEqual(stored["data"], {"from": "+15551234567", "body": "YES"})
        self.assertIsNotNone(stored["ingestedUtc"])

    def test_object_without_data_member_stores_null_data(self) -> None:
        event = self.ingestor.ingest('{"other":1}')

        self.assertIsNone(event.data)
        self.assertIsNone(event.parse_error)

    def test_non_object_json_stores_null_data(self) -> None:
        event = self.ingestor.ingest("[1, 2, 3]")

        self.assertIsNone(event.data)
        self.assertIsNone(event.parse_error)

    def test_invalid_json_is_persisted_with_parse_error(self) -> None:
        event = self.ingestor.ingest("not valid json")

        self.assertIsNone(event.data)
        self.assertTrue((event.parse_error or "").startswith("Failed to parse queue JSON"))
        stored = self.store.get(INBOUND_COLLECTION, event.id)
        assert stored is not None
        self.assertEqual(stored["message"], "not valid json")
        self.assertEqual(stored["parseError"], event.parse_error)

    def test_deeply_nested_payload_is_persisted_with_parse_error(self) -> None:
        raw = "[" * 200000

        event = self.ingestor.ingest(raw)

        self.assertIsNone(event.data)
        self.assertTrue((event.parse_error or "").startswith("Failed to parse queue JSON"))
        stored = self.store.get(INBOUND_COLLECTION, event.id)
        assert stored is not None
        self.assertEqual(len(stored["message"]), 200000)
        self.assertEqual(stored["parseError"], event.parse_error)

    def test_bytes_are_decoded_leniently(self) -> None:
        event = self.ingestor.ingest(b'{"data":"caf\xc3\xa9"}')

        self.assertEqual(event.data, "café")

        broken = self.ingestor.ingest(b"\xff\xfe")
        self.assertIsNotNone(broken.parse_error)
        self.assertIn("\ufffd", broken.raw_message)

    def test_each_delivery_is_a_new_event_without_dedupe(self) -> None:
        first = self.ingestor.ingest('{"data":1}', source_message_id="inbound-sms:0:1")
        second = self.ingestor.ingest('{"data":1}', source_message_id="inbound-sms:0:1")

        self.assertNotEqual(first.id, second.id)
        self.assertEqual(len(self.store.documents(INBOUND_COLLECTION)), 2)

    def test_dedupe_collapses_redeliveries_of_the_same_source_message(self) -> None:
        ingestor = InboundIngestor(self.store, dedupe_by_source_id=True)

        first = ingestor.ingest('{"data":1}', source_message_id="inbound-sms:0:1")
        again = ingestor.ingest('{"data":1}', source_message_id="inbound-sms:0:1")
        other = ingestor.ingest('{"data":1}', source_message_id="inbound-sms:0:2")

        self.assertEqual(first.id, again.id)
        self.assertEqual(first.ingested_at_utc, again.ingested_at_utc)
        self.assertNotEqual(first.id, other.id)
        self.assertEqual(len(self.store.documents(INBOUND_COLLECTION)), 2)

    def test_dedupe_without_source_id_falls_back_to_fresh_ids(self) -> None:
        ingestor = InboundIngestor(self.store, dedupe_by_source_id=True, id_factory=lambda: next(self.ids))

        first = ingestor.ingest('{"data":1}')
        second = ingestor.ingest('{"data":1}')

        self.assertEqual([first.id, second.id], ["evt-1", "evt-2"])

    def test_get_returns_stored_event(self) -> None:
        event = self.ingestor.ingest('{"data":{"x":1}}', source_message_id="t:0:9")

        fetched = self.ingestor.get(event.id)

        assert fetched is not None
        self.assertEqual(fetched.data, {"x": 1})
        self.assertEqual(fetched.source_message_id, "t:0:9")
        self.assertIsNone(self.ingestor.get("missing"))


if __name__ == "__main__":
    unittest.main()
