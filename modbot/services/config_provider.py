"""Runtime policy configuration backed by the store's config table.

Values are strings; list values are JSON arrays. Cached reads are served for
CONFIG_CACHE_TTL_SECONDS, every write through the provider invalidates the
cache, and ``fresh=True`` bypasses it entirely (roles and thresholds always
read fresh).
"""

import json
import logging
import time

from config import CONFIG_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class ConfigProvider:
    def __init__(self, db, ttl: float = CONFIG_CACHE_TTL_SECONDS):
        self.db = db
        self.ttl = ttl
        self._cache: dict[str, str] | None = None
        self._loaded_at = 0.0

    def invalidate(self) -> None:
        self._cache = None

    async def _snapshot(self) -> dict[str, str]:
        if self._cache is None or time.monotonic() - self._loaded_at > self.ttl:
            self._cache = await self.db.get_all_config()
            self._loaded_at = time.monotonic()
        return self._cache

    async def get(self, key: str, default: str | None = None, fresh: bool = False) -> str | None:
        """Return the raw string value for ``key``, or ``default`` if unset."""
        if fresh:
            value = await self.db.get_config_value(key)
        else:
            value = (await self._snapshot()).get(key)
        return default if value is None else value

    async def get_int(self, key: str, default: int, fresh: bool = False) -> int:
        """Integer value; malformed or non-positive values fall back to ``default``."""
        raw = await self.get(key, fresh=fresh)
        if raw is None:
            return default
        try:
            value = int(json.loads(raw)) if raw.strip().startswith('"') else int(raw)
        except (TypeError, ValueError):
            logger.warning("Config %s has malformed value %r, using default %d", key, raw, default)
            return default
        if value <= 0:
            logger.warning("Config %s must be positive (got %d), using default %d", key, value, default)
            return default
        return value

    async def get_bool(self, key: str, default: bool, fresh: bool = False) -> bool:
        raw = await self.get(key, fresh=fresh)
        if raw is None:
            return default
        normalized = raw.strip().strip('"').lower()
        if normalized in ("true", "1", "yes", "on"):
            return True
        if normalized in ("false", "0", "no", "off"):
            return False
        logger.warning("Config %s has malformed boolean %r, using default %s", key, raw, default)
        return default

    async def get_json_list(self, key: str, fresh: bool = False) -> list[str]:
        """JSON array of identities as strings. Missing or malformed → []."""
        raw = await self.get(key, fresh=fresh)
        if not raw:
            return []
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Config %s is not valid JSON: %r", key, raw)
            return []
        if not isinstance(value, list):
            logger.warning("Config %s is not a JSON array: %r", key, raw)
            return []
        return [str(v) for v in value]

    async def set(self, key: str, value) -> None:
        """Write a value (lists are JSON-encoded) and invalidate the cache."""
        if isinstance(value, (list, tuple, set)):
            value = json.dumps(list(value))
        elif isinstance(value, bool):
            value = "true" if value else "false"
        await self.db.set_config_value(key, str(value))
        self.invalidate()
