"""
Tests for ledger persistence backends
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

import redis.asyncio as aioredis

from examguard.config import Settings
from examguard.proctor.authority import Authority
from examguard.proctor.exceptions import LedgerStoreError
from examguard.proctor.ledger import InfractionLedger
from examguard.proctor.storage import (
    JsonFileLedgerStore,
    MemoryLedgerStore,
    RedisLedgerStore,
    create_ledger_store,
)


def blocked_snapshot():
    ledger = InfractionLedger(threshold=0)
    ledger.record("s1", "SCREEN_SHARE", "Detected: anydesk")
    return ledger.snapshot()


class TestJsonFileLedgerStore:

    @pytest.mark.asyncio
    async def test_missing_file_loads_empty(self, tmp_path):
        store = JsonFileLedgerStore(str(tmp_path / "ledger.json"))
        assert await store.load() == {"infractions": {}, "blockedIds": {}}

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "ledger.json"
        store = JsonFileLedgerStore(str(path))
        snapshot = blocked_snapshot()

        await store.save(snapshot)

        assert await store.load() == snapshot
        assert not path.with_suffix(".json.tmp").exists()
        assert json.loads(path.read_text())["blockedIds"]["s1"]["reason"] == "Exceeded infraction threshold"

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json")

        with pytest.raises(LedgerStoreError):
            await JsonFileLedgerStore(str(path)).load()

    @pytest.mark.asyncio
    async def test_block_survives_restart(self, tmp_path):
        path = str(tmp_path / "ledger.json")
        first = Authority(InfractionLedger(threshold=0), JsonFileLedgerStore(path))
        await first.record_infraction("s1", "TAB_SWITCH")
        await first.close()

        second = Authority(InfractionLedger(threshold=0), JsonFileLedgerStore(path))
        status = await second.is_blocked("s1")

        assert status.blocked is True
        assert status.info["totalInfractions"] == 1


class TestRedisLedgerStore:

    def make_client(self, stored=(None, None)):
        client = MagicMock()
        client.mget = AsyncMock(return_value=list(stored))
        client.mset = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_save_writes_both_keys_in_one_call(self):
        client = self.make_client()
        store = RedisLedgerStore("redis://unused", prefix="test:", client=client)
        snapshot = blocked_snapshot()

        await store.save(snapshot)

        client.mset.assert_awaited_once()
        written = client.mset.await_args.args[0]
        assert set(written) == {"test:infractions", "test:blockedIds"}
        assert json.loads(written["test:blockedIds"]) == snapshot["blockedIds"]

    @pytest.mark.asyncio
    async def test_load(self):
        snapshot = blocked_snapshot()
        client = self.make_client((
            json.dumps(snapshot["infractions"]),
            json.dumps(snapshot["blockedIds"]),
        ))
        store = RedisLedgerStore("redis://unused", client=client)

        assert await store.load() == snapshot
        client.mget.assert_awaited_once_with(["examguard:infractions", "examguard:blockedIds"])

    @pytest.mark.asyncio
    async def test_load_empty(self):
        store = RedisLedgerStore("redis://unused", client=self.make_client())
        assert await store.load() == {"infractions": {}, "blockedIds": {}}

    @pytest.mark.asyncio
    async def test_redis_error_wrapped(self):
        client = self.make_client()
        client.mset = AsyncMock(side_effect=aioredis.ConnectionError("refused"))
        store = RedisLedgerStore("redis://unused", client=client)

        with pytest.raises(LedgerStoreError):
            await store.save(blocked_snapshot())

    @pytest.mark.asyncio
    async def test_close(self):
        client = self.make_client()
        store = RedisLedgerStore("redis://unused", client=client)

        await store.close()

        client.aclose.assert_awaited_once()


class TestMemoryLedgerStore:

    @pytest.mark.asyncio
    async def test_save_is_a_copy(self):
        store = MemoryLedgerStore()
        snapshot = blocked_snapshot()
        await store.save(snapshot)
        snapshot["blockedIds"].clear()

        assert "s1" in (await store.load())["blockedIds"]
        assert store.save_count == 1


class TestFactory:

    def test_backends(self, tmp_path):
        json_settings = Settings(LEDGER_BACKEND="json", LEDGER_PATH=str(tmp_path / "l.json"))
        assert isinstance(create_ledger_store(json_settings), JsonFileLedgerStore)
        assert isinstance(create_ledger_store(Settings(LEDGER_BACKEND="redis")), RedisLedgerStore)
        assert isinstance(create_ledger_store(Settings(LEDGER_BACKEND="memory")), MemoryLedgerStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_ledger_store(Settings(LEDGER_BACKEND="sqlite"))
