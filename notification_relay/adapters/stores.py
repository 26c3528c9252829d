"""Durable store adapters.

Mental model refresher:
- This is outbound adapter code, like the provider senders.
- Application services only see the `Store` protocol from `types.py`.
- `InMemoryStore` backs tests and local demos; `RedisStore` is the shared
  backend used when several relay processes run side by side.
"""

from __future__ import annotations

import copy
import json
import threading
import time
from typing import Any, Callable

from ..errors import StorageUnavailableError
from ..types import ClockFn, Document


class InMemoryStore:
    """Process-local store. Atomicity comes from a single lock."""

    def __init__(self, *, clock: ClockFn = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._collections: dict[str, dict[str, Document]] = {}
        self._counters: dict[str, int] = {}

    def insert_if_absent(self, collection: str, key: str, document: Document) -> Document | None:
        with self._lock:
            bucket = self._collections.setdefault(collection, {})
            existing = bucket.get(key)
            if existing is not None:
                return copy.deepcopy(existing)
            bucket[key] = copy.deepcopy(document)
            return None

    def put(self, collection: str, key: str, document: Document) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[key] = copy.deepcopy(document)

    def get(self, collection: str, key: str) -> Document | None:
        with self._lock:
            document = self._collections.get(collection, {}).get(key)
            return copy.deepcopy(document) if document is not None else None

    def increment_window(self, key: str, window_seconds: int) -> int:
        window_key = f"{key}:{_window_id(self._clock(), window_seconds)}"
        with self._lock:
            self._counters[window_key] = self._counters.get(window_key, 0) + 1
            return self._counters[window_key]

    def documents(self, collection: str) -> list[Document]:
        """Snapshot of one collection, in insertion order."""
        with self._lock:
            return [copy.deepcopy(item) for item in self._collections.get(collection, {}).values()]


class RedisStore:
    """Redis-backed store. Documents are JSON strings under `<prefix>:<collection>:<key>`."""

    def __init__(
        self,
        client: Any,
        *,
        key_prefix: str = "relay",
        clock: ClockFn = time.time,
    ) -> None:
        self._client = client
        self._prefix = key_prefix.rstrip(":")
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = "relay", timeout_seconds: float = 5.0) -> RedisStore:
        redis = _import_redis()
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout_seconds,
            socket_timeout=timeout_seconds,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        return cls(client, key_prefix=key_prefix)

    def insert_if_absent(self, collection: str, key: str, document: Document) -> Document | None:
        name = self._key(collection, key)
        inserted = self._call(lambda: self._client.set(name, _dumps(document), nx=True))
        if inserted:
            return None
        existing = self._call(lambda: self._client.get(name))
        if existing is None:
            raise StorageUnavailableError(f"conditional insert lost {name} between SET NX and GET")
        return _loads(existing)

    def put(self, collection: str, key: str, document: Document) -> None:
        name = self._key(collection, key)
        self._call(lambda: self._client.set(name, _dumps(document)))

    def get(self, collection: str, key: str) -> Document | None:
        raw = self._call(lambda: self._client.get(self._key(collection, key)))
        return _loads(raw) if raw is not None else None

    def increment_window(self, key: str, window_seconds: int) -> int:
        name = f"{self._prefix}:{key}:{_window_id(self._clock(), window_seconds)}"

        def _incr() -> Any:
            pipe = self._client.pipeline()
            pipe.incr(name)
            pipe.expire(name, max(int(window_seconds), 1) * 2)
            return pipe.execute()

        count, _expire_ok = self._call(_incr)
        return int(count)

    def ping(self) -> bool:
        return bool(self._call(self._client.ping))

    def _key(self, collection: str, key: str) -> str:
        return f"{self._prefix}:{collection}:{key}"

    def _call(self, operation: Callable[[], Any]) -> Any:
        redis = _import_redis()
        try:
            return operation()
        except redis.RedisError as exc:
            raise StorageUnavailableError(f"redis operation failed: {exc}") from exc


def _import_redis() -> Any:
    try:
        import redis
    except Exception as exc:
        raise RuntimeError("Redis store requires `redis`. Install with: pip install redis") from exc
    return redis


def _window_id(now: float, window_seconds: int) -> int:
    return int(now // max(int(window_seconds), 1))


def _dumps(document: Document) -> str:
    return json.dumps(document, separators=(",", ":"), sort_keys=True)


def _loads(raw: str | bytes) -> Document:
    text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise StorageUnavailableError("stored document is not a JSON object")
    return parsed
