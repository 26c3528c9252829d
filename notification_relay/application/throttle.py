"""Single configurable send throttle (fixed window, counted in the store)."""

from __future__ import annotations

from ..types import Store


class Throttle:
    def __init__(
        self,
        store: Store,
        *,
        limit: int,
        window_seconds: int = 60,
        scope: str = "provider",
    ) -> None:
        self._store = store
        self._limit = int(limit)
        self._window_seconds = max(int(window_seconds), 1)
        self._key = f"throttle:{scope}"

    @property
    def enabled(self) -> bool:
        return self._limit > 0

    def acquire(self) -> bool:
        """Count one provider call; False once the window's limit is used up."""
        if not self.enabled:
            return True
        count = self._store.increment_window(self._key, self._window_seconds)
        return count <= self._limit
