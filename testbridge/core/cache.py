from __future__ import annotations

from typing import Any, Dict, Hashable


class SessionCache:
    """In-memory result cache that lives as long as one remote session.

    - No TTL: entries stay valid until the session is cleared.
    - Negative results are stored like any other value.
    - No locking: all access happens on the event loop thread.
    """

    def __init__(self) -> None:
        self._data: Dict[Hashable, Any] = {}

    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: Hashable, value: Any) -> None:
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
