from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ReadThroughCache:
    """Process-scoped cache of idempotently computed values.

    Loaders may run more than once under interleaving; the last write wins.
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        if key in self._values:
            return self._values[key]
        value = loader()
        self._values[key] = value
        logger.debug("Cache loaded %s", key)
        return value

    def invalidate(self, key: str | None = None) -> list[str]:
        if key is None:
            dropped = sorted(self._values)
            self._values.clear()
        else:
            dropped = [key] if key in self._values else []
            self._values.pop(key, None)
        if dropped:
            logger.info("Cache invalidated: %s", ", ".join(dropped))
        return dropped
