from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from databases import Database

from services.storefront_config import get_storefront_settings

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """
    Durable key-value storage for client-side state (catalog snapshot, cart,
    saved items, preferences).

    Values are strings; callers normally go through `read_json`/`write_json`,
    which never raise.
    """

    async def connect(self) -> None:  # noqa: D401
        return None

    async def disconnect(self) -> None:  # noqa: D401
        return None

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class MemoryStorage(KeyValueStorage):
    """Process-local default when STOREFRONT_DATABASE_URL is not configured."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class DatabaseStorage(KeyValueStorage):
    """Key-value rows in a single `kv_store` table, through the `databases` library."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.database = Database(url)

    async def connect(self) -> None:
        if not self.database.is_connected:
            await self.database.connect()
        await self.database.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )

    async def disconnect(self) -> None:
        if self.database.is_connected:
            await self.database.disconnect()

    async def get(self, key: str) -> Optional[str]:
        row = await self.database.fetch_one(
            "SELECT value FROM kv_store WHERE key = :key",
            {"key": key},
        )
        if not row:
            return None
        return row["value"]

    async def set(self, key: str, value: str) -> None:
        await self.database.execute(
            """
            INSERT INTO kv_store (key, value) VALUES (:key, :value)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value
            """,
            {"key": key, "value": value},
        )

    async def delete(self, key: str) -> None:
        await self.database.execute("DELETE FROM kv_store WHERE key = :key", {"key": key})


async def read_json(storage: KeyValueStorage, key: str) -> Optional[Any]:
    """Read and decode a JSON value; any storage or decode failure yields None."""
    try:
        raw = await storage.get(key)
    except Exception as e:
        logger.error(f"[storage] read failed for {key}: {e.__class__.__name__}: {e}")
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        logger.error(f"[storage] corrupt value under {key}: {e}")
        return None


async def write_json(storage: KeyValueStorage, key: str, value: Any) -> bool:
    """Encode and persist a JSON value; returns False (and logs) instead of raising."""
    try:
        await storage.set(key, json.dumps(value, ensure_ascii=False))
    except Exception as e:
        logger.error(f"[storage] write failed for {key}: {e.__class__.__name__}: {e}")
        return False
    return True


def build_storage(url: Optional[str] = None) -> KeyValueStorage:
    url = (url or get_storefront_settings().database_url or "").strip()
    if not url:
        return MemoryStorage()
    return DatabaseStorage(url)
