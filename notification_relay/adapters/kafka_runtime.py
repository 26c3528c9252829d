"""Kafka transport adapters for the inbound SMS queue.

Mental model refresher:
- This module is transport glue to Kafka itself.
- It maps Kafka records into the consumer-handler adapter flow.
- Offsets are committed manually, one record at a time, only after the event
  is persisted (or dead-lettered). A crash before commit means redelivery,
  never loss.
"""

from __future__ import annotations

from datetime import UTC, datetime
import json
import logging
import os
from typing import Any, Mapping

from ..application.ingest import InboundIngestor
from ..config import env_bool, env_float, env_int, required_env
from ..errors import ConfigurationError
from .consumer_handler import handle_message

logger = logging.getLogger(__name__)

DEFAULT_INBOUND_TOPIC = "inbound-sms"


def publish_inbound_sms_event(
    payload: Mapping[str, Any] | str,
    *,
    topic: str | None = None,
) -> dict[str, Any]:
    """Publish one inbound SMS event to Kafka (local testing helper)."""
    _KafkaConsumer, KafkaProducer, _TopicPartition, _OffsetAndMetadata = _import_kafka_python()
    bootstrap_servers = _bootstrap_servers_from_env()
    topic_name = topic or _inbound_topic()
    send_timeout_seconds = env_float(os.environ, "KAFKA_SEND_TIMEOUT_SECONDS", 10.0)

    producer = KafkaProducer(
        bootstrap_servers=bootstrap_servers,
        acks=os.getenv("KAFKA_PRODUCER_ACKS", "all"),
    )
    try:
        future = producer.send(topic_name, value=_serialize_payload(payload))
        metadata = future.get(timeout=send_timeout_seconds)
        producer.flush(timeout=send_timeout_seconds)
    finally:
        producer.close()

    return {
        "topic": metadata.topic,
        "partition": metadata.partition,
        "offset": metadata.offset,
    }


def run_inbound_sms_worker_forever(ingestor: InboundIngestor) -> int:
    """Run the Kafka consumer loop that ingests inbound SMS events."""
    KafkaConsumer, KafkaProducer, TopicPartition, OffsetAndMetadata = _import_kafka_python()
    env = os.environ
    bootstrap_servers = _bootstrap_servers_from_env()
    topic_name = _inbound_topic()
    dlq_enabled = env_bool(env, "KAFKA_DLQ_ENABLED", default=True)
    dlq_topic = env.get("KAFKA_TOPIC_INBOUND_SMS_DLQ", f"{topic_name}.dlq")
    group_id = env.get("KAFKA_GROUP_ID", "notification-relay-inbound-sms")
    auto_offset_reset = env.get("KAFKA_AUTO_OFFSET_RESET", "earliest")
    poll_timeout_ms = _poll_timeout_ms_from_env()
    max_records = env_int(env, "KAFKA_MAX_RECORDS_PER_POLL", 50)
    dlq_send_timeout_seconds = env_float(
        env,
        "KAFKA_DLQ_SEND_TIMEOUT_SECONDS",
        env_float(env, "KAFKA_SEND_TIMEOUT_SECONDS", 10.0),
    )

    consumer = KafkaConsumer(
        topic_name,
        bootstrap_servers=bootstrap_servers,
        group_id=group_id,
        enable_auto_commit=False,
        auto_offset_reset=auto_offset_reset,
    )
    dlq_producer = (
        KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            value_serializer=_serialize_json_object,
            acks=env.get("KAFKA_PRODUCER_ACKS", "all"),
        )
        if dlq_enabled
        else None
    )
    logger.info(
        "[WORKER START] topic=%s group_id=%s dlq_enabled=%s dlq_topic=%s dedupe=%s",
        topic_name,
        group_id,
        dlq_enabled,
        dlq_topic,
        ingestor.dedupe_by_source_id,
    )

    try:
        while True:
            batches = consumer.poll(timeout_ms=poll_timeout_ms, max_records=max_records)
            if not batches:
                continue

            for _topic_partition, records in batches.items():
                for message in records:
                    message_topic = message.topic
                    message_partition = int(message.partition)
                    message_offset = int(message.offset)

                    def commit_current_offset() -> None:
                        offsets = {
                            TopicPartition(message_topic, message_partition): _offset_and_metadata(
                                OffsetAndMetadata, message_offset + 1
                            )
                        }
                        consumer.commit(offsets=offsets)
                        logger.info(
                            "[COMMIT] topic=%s partition=%s offset=%s",
                            message_topic,
                            message_partition,
                            message_offset,
                        )

                    def publish_to_dlq(*, reason: str, source_payload: Any) -> bool:
                        if dlq_producer is None:
                            return False

                        dlq_payload = _build_dlq_payload(
                            source_topic=message_topic,
                            source_partition=message_partition,
                            source_offset=message_offset,
                            source_payload=source_payload,
                            failure_reason=reason,
                        )
                        try:
                            future = dlq_producer.send(dlq_topic, value=dlq_payload)
                            metadata = future.get(timeout=dlq_send_timeout_seconds)
                        except Exception as exc:
                            logger.error(
                                "[DLQ ERROR] source_topic=%s source_partition=%s "
                                "source_offset=%s reason=%s error=%s",
                                message_topic,
                                message_partition,
                                message_offset,
                                reason,
                                exc,
                            )
                            return False

                        logger.warning(
                            "[DLQ] source_topic=%s source_partition=%s source_offset=%s "
                            "dlq_topic=%s dlq_partition=%s dlq_offset=%s reason=%s",
                            message_topic,
                            message_partition,
                            message_offset,
                            metadata.topic,
                            metadata.partition,
                            metadata.offset,
                            reason,
                        )
                        return True

                    internal_record = {
                        "topic": message_topic,
                        "partition": message_partition,
                        "offset": message_offset,
                        "value": message.value,
                    }

                    def commit_callback(_record: Mapping[str, Any]) -> None:
                        commit_current_offset()

                    def reject_callback(_record: Mapping[str, Any], reason: str) -> None:
                        if publish_to_dlq(reason=reason, source_payload=_record.get("value")):
                            commit_current_offset()
                        else:
                            logger.error(
                                "[NO-COMMIT] topic=%s partition=%s offset=%s reason=%s",
                                message_topic,
                                message_partition,
                                message_offset,
                                reason,
                            )

                    result = handle_message(
                        internal_record,
                        ingestor=ingestor,
                        commit=commit_callback,
                        reject=reject_callback,
                    )
                    logger.info(
                        "[RESULT] topic=%s partition=%s offset=%s status=%s "
                        "should_commit=%s error=%s",
                        message_topic,
                        message_partition,
                        message_offset,
                        result["status"],
                        result["should_commit"],
                        result["error"],
                    )
    except KeyboardInterrupt:
        logger.info("[WORKER STOP] received keyboard interrupt")
        return 0
    except Exception:
        logger.exception("[WORKER ERROR] consumer loop failed")
        return 1
    finally:
        _close_quietly(consumer.close, "consumer close")
        if dlq_producer is not None:
            _close_quietly(lambda: dlq_producer.flush(timeout=dlq_send_timeout_seconds), "dlq flush")
            _close_quietly(dlq_producer.close, "dlq close")


def _import_kafka_python() -> tuple[Any, Any, Any, Any]:
    try:
        from kafka import KafkaConsumer, KafkaProducer, TopicPartition
        from kafka.structs import OffsetAndMetadata
    except Exception as exc:
        raise RuntimeError(
            "Kafka support requires `kafka-python`. Install with: pip install kafka-python"
        ) from exc
    return KafkaConsumer, KafkaProducer, TopicPartition, OffsetAndMetadata


def _inbound_topic() -> str:
    return os.getenv("KAFKA_TOPIC_INBOUND_SMS", DEFAULT_INBOUND_TOPIC).strip() or DEFAULT_INBOUND_TOPIC


def _bootstrap_servers_from_env() -> list[str]:
    raw = required_env(os.environ, "KAFKA_BOOTSTRAP_SERVERS")
    servers = [item.strip() for item in raw.split(",") if item.strip()]
    if not servers:
        raise ConfigurationError("KAFKA_BOOTSTRAP_SERVERS must include at least one host:port")
    return servers


def _poll_timeout_ms_from_env() -> int:
    timeout_seconds = env_float(os.environ, "KAFKA_POLL_TIMEOUT_SECONDS", 1.0)
    timeout_ms = int(timeout_seconds * 1000)
    if timeout_ms <= 0:
        raise ConfigurationError("KAFKA_POLL_TIMEOUT_SECONDS must be > 0")
    return timeout_ms


def _serialize_json_object(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def _serialize_payload(payload: Mapping[str, Any] | str) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return _serialize_json_object(payload)


def _build_dlq_payload(
    *,
    source_topic: str,
    source_partition: int,
    source_offset: int,
    source_payload: Any,
    failure_reason: str,
) -> dict[str, Any]:
    return {
        "event_type": f"{source_topic}.dlq",
        "failed_at": datetime.now(tz=UTC).isoformat(),
        "failure_reason": failure_reason,
        "source": {
            "topic": source_topic,
            "partition": source_partition,
            "offset": source_offset,
        },
        "payload": _to_json_compatible(source_payload),
    }


def _to_json_compatible(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json_compatible(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json_compatible(item) for item in value]
    return repr(value)


def _close_quietly(action: Any, label: str) -> None:
    try:
        action()
    except Exception as exc:
        logger.warning("[WORKER STOP] %s failed: %s", label, exc)


def _offset_and_metadata(offset_and_metadata_type: Any, offset: int) -> Any:
    """Build kafka-python OffsetAndMetadata across version signatures."""
    try:
        return offset_and_metadata_type(offset, "", -1)
    except TypeError:
        try:
            return offset_and_metadata_type(offset, "", None)
        except TypeError:
            return offset_and_metadata_type(offset, "")
