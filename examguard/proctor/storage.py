"""
Ledger Storage - persists the ledger snapshot across restarts

Backends:
- MemoryLedgerStore: process lifetime only (tests, demos)
- JsonFileLedgerStore: single JSON document, replaced atomically
- RedisLedgerStore: two keys ("infractions", "blockedIds") written in one MSET
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional

import redis.asyncio as aioredis

from .exceptions import LedgerStoreError

logger = logging.getLogger(__name__)


EMPTY_SNAPSHOT: Dict[str, Dict[str, Any]] = {"infractions": {}, "blockedIds": {}}


def empty_snapshot() -> Dict[str, Dict[str, Any]]:
    return deepcopy(EMPTY_SNAPSHOT)


class LedgerStore(ABC):
    """Persistence backend for ledger snapshots"""

    @abstractmethod
    async def load(self) -> Dict[str, Dict[str, Any]]:
        """Return the last saved snapshot (empty layout when none)"""

    @abstractmethod
    async def save(self, snapshot: Dict[str, Dict[str, Any]]) -> None:
        """Persist a full snapshot"""

    async def close(self) -> None:
        """Release backend resources"""


class MemoryLedgerStore(LedgerStore):
    """Keeps a deep copy of the last snapshot in memory"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._snapshot = deepcopy(initial) if initial else empty_snapshot()
        self.save_count = 0

    async def load(self) -> Dict[str, Dict[str, Any]]:
        return deepcopy(self._snapshot)

    async def save(self, snapshot: Dict[str, Dict[str, Any]]) -> None:
        self._snapshot = deepcopy(snapshot)
        self.save_count += 1


class JsonFileLedgerStore(LedgerStore):
    """
    Stores the snapshot as one JSON file.

    Writes go to a sibling temp file which then replaces the target, so a
    crash mid-write leaves the previous snapshot intact.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    async def load(self) -> Dict[str, Dict[str, Any]]:
        return await asyncio.to_thread(self._read)

    async def save(self, snapshot: Dict[str, Dict[str, Any]]) -> None:
        await asyncio.to_thread(self._write, snapshot)

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return empty_snapshot()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerStoreError(f"Could not read ledger at {self.path}: {e}") from e

        snapshot = empty_snapshot()
        snapshot["infractions"].update(data.get("infractions") or {})
        snapshot["blockedIds"].update(data.get("blockedIds") or {})
        return snapshot

    def _write(self, snapshot: Dict[str, Dict[str, Any]]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise LedgerStoreError(f"Could not write ledger at {self.path}: {e}") from e


class RedisLedgerStore(LedgerStore):
    """
    Stores both mappings as JSON strings under two Redis keys.

    Usage:
        store = RedisLedgerStore("redis://localhost:6379/0")
        snapshot = await store.load()
    """

    def __init__(self, redis_url: str, prefix: str = "examguard:", client: Any = None):
        self.redis_url = redis_url
        self.prefix = prefix
        self._client = client

    @property
    def client(self) -> Any:
        """Lazy load Redis client"""
        if self._client is None:
            self._client = aioredis.from_url(self.redis_url, decode_responses=True)
            logger.info(f"[LEDGER] Using Redis: {self.redis_url}")
        return self._client

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    async def load(self) -> Dict[str, Dict[str, Any]]:
        try:
            raw_infractions, raw_blocked = await self.client.mget(
                [self._key("infractions"), self._key("blockedIds")]
            )
        except aioredis.RedisError as e:
            raise LedgerStoreError(f"Redis load failed: {e}") from e

        snapshot = empty_snapshot()
        if raw_infractions:
            snapshot["infractions"].update(json.loads(raw_infractions))
        if raw_blocked:
            snapshot["blockedIds"].update(json.loads(raw_blocked))
        return snapshot

    async def save(self, snapshot: Dict[str, Dict[str, Any]]) -> None:
        try:
            await self.client.mset({
                self._key("infractions"): json.dumps(snapshot.get("infractions", {})),
                self._key("blockedIds"): json.dumps(snapshot.get("blockedIds", {})),
            })
        except aioredis.RedisError as e:
            raise LedgerStoreError(f"Redis save failed: {e}") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_ledger_store(settings) -> LedgerStore:
    """Build the store selected by settings.LEDGER_BACKEND"""
    backend = settings.LEDGER_BACKEND.lower()
    if backend == "json":
        return JsonFileLedgerStore(settings.LEDGER_PATH)
    if backend == "redis":
        return RedisLedgerStore(settings.REDIS_URL, settings.REDIS_KEY_PREFIX)
    if backend == "memory":
        return MemoryLedgerStore()
    raise ValueError(f"Unknown ledger backend: {settings.LEDGER_BACKEND}")
