"""
Authority - the single serialization point that owns the infraction ledger

Every ledger mutation for an identity is queued in that identity's mailbox
and applied by one worker task, strictly in arrival order. The response is
delivered only after the new state has been handed to the store, so a
caller that sees "blocked" can rely on the block surviving a restart.
Different identities have independent mailboxes and never wait on each
other except for the brief persistence lock.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .exceptions import LedgerStoreError, UnknownMessageError
from .infractions import type_name
from .ledger import InfractionLedger, Outcome
from .messages import (
    AckResponse,
    IsBlockedRequest,
    IsBlockedResponse,
    MessageEnvelope,
    RecordInfractionRequest,
    RecordInfractionResponse,
    StatusResponse,
    UnblockRequest,
)
from .storage import LedgerStore, MemoryLedgerStore
from .utils.logging import log_block, log_infraction_recorded, log_unblock

logger = logging.getLogger(__name__)


class _Mailbox:
    """FIFO of pending jobs for one identity, drained by a single task"""

    def __init__(self, key: str):
        self.key = key
        self.queue: asyncio.Queue = asyncio.Queue()
        self.task: Optional[asyncio.Task] = None


class Authority:
    """
    Serializes ledger mutations per identity.

    Usage:
        authority = Authority(InfractionLedger(), JsonFileLedgerStore("ledger.json"))
        await authority.start()
        response = await authority.record_infraction("s-42", "TAB_SWITCH")
    """

    def __init__(self, ledger: Optional[InfractionLedger] = None, store: Optional[LedgerStore] = None):
        self.ledger = ledger or InfractionLedger()
        self.store = store or MemoryLedgerStore()

        self._mailboxes: Dict[str, _Mailbox] = {}
        self._persist_lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._intake_open = asyncio.Event()
        self._intake_open.set()
        self._started = False

    @property
    def threshold(self) -> int:
        return self.ledger.threshold

    async def start(self):
        """Load the persisted ledger. Safe to call more than once."""
        async with self._start_lock:
            if self._started:
                return
            snapshot = await self.store.load()
            self.ledger.load(snapshot)
            self._started = True
            logger.info(
                f"Authority started: {len(self.ledger.infractions)} identities, "
                f"{len(self.ledger.blocked_ids)} blocked"
            )

    async def close(self):
        """Finish queued work, stop workers and close the store"""
        await self._drain()
        for mailbox in list(self._mailboxes.values()):
            if mailbox.task is not None:
                mailbox.task.cancel()
        self._mailboxes.clear()
        await self.store.close()

    # ============== Protocol operations ==============

    async def record_infraction(
        self,
        identity: Optional[str],
        infraction_type: Any,
        details: str = "",
        page: str = ""
    ) -> RecordInfractionResponse:
        """Record an infraction; returns warned, blocked or already-blocked."""
        if not identity:
            return RecordInfractionResponse(ok=False, reason="no-id")

        def apply() -> RecordInfractionResponse:
            outcome = self.ledger.record(identity, infraction_type, details, page)

            if outcome.outcome is Outcome.ALREADY_BLOCKED:
                return RecordInfractionResponse(
                    ok=False,
                    blocked=True,
                    reason="already-blocked",
                    info=outcome.block.to_dict(),
                )

            log_infraction_recorded(identity, type_name(infraction_type), outcome.warnings, self.threshold)

            if outcome.outcome is Outcome.BLOCKED:
                log_block(identity, outcome.block.reason, outcome.count)
                return RecordInfractionResponse(
                    ok=True,
                    blocked=True,
                    block_reason=outcome.block.reason,
                    infractions=outcome.count,
                    warnings=outcome.warnings,
                    info=outcome.block.to_dict(),
                )

            return RecordInfractionResponse(
                ok=True,
                infractions=outcome.count,
                warnings=outcome.warnings,
                threshold=self.threshold,
                message=outcome.message,
            )

        return await self._submit(identity, apply, persist=True)

    async def is_blocked(self, identity: str) -> IsBlockedResponse:
        await self.start()
        block = self.ledger.is_blocked(identity)
        return IsBlockedResponse(
            blocked=block is not None,
            info=block.to_dict() if block is not None else None,
        )

    async def get_status(self) -> StatusResponse:
        await self.start()
        snapshot = self.ledger.snapshot()
        return StatusResponse(
            infractions=snapshot["infractions"],
            blocked_ids=snapshot["blockedIds"],
        )

    async def unblock_id(self, identity: str) -> AckResponse:
        if not identity:
            return AckResponse(ok=False)

        def apply() -> AckResponse:
            was_blocked = self.ledger.is_blocked(identity) is not None
            ok = self.ledger.unblock(identity)
            if was_blocked:
                log_unblock(identity)
            return AckResponse(ok=ok)

        return await self._submit(identity, apply, persist=True)

    async def clear_all_data(self) -> AckResponse:
        """Reset the whole ledger once every queued mutation has finished"""
        await self.start()
        self._intake_open.clear()
        try:
            await self._drain()
            self.ledger.clear()
            await self._persist()
            logger.warning("Ledger cleared")
        finally:
            self._intake_open.set()
        return AckResponse(ok=True)

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch a {"type": ...} message and return the wire response"""
        envelope = MessageEnvelope.model_validate(message)

        if envelope.type == "recordInfraction":
            request = RecordInfractionRequest.model_validate(message)
            response = await self.record_infraction(
                request.identity,
                request.infraction_type,
                request.details,
                request.page,
            )
        elif envelope.type == "isBlocked":
            request = IsBlockedRequest.model_validate(message)
            response = await self.is_blocked(request.identity)
        elif envelope.type == "getStatus":
            response = await self.get_status()
        elif envelope.type == "unblockId":
            request = UnblockRequest.model_validate(message)
            response = await self.unblock_id(request.identity)
        elif envelope.type == "clearAllData":
            response = await self.clear_all_data()
        else:
            raise UnknownMessageError(f"Unknown message type: {envelope.type}")

        return response.to_wire()

    # ============== Serialization ==============

    async def _submit(self, identity: str, apply: Callable[[], Any], persist: bool) -> Any:
        await self._intake_open.wait()
        await self.start()

        loop = asyncio.get_running_loop()
        future = loop.create_future()

        # Lookup and enqueue happen without a suspension point in between,
        # so a worker retiring its mailbox can never strand this job.
        mailbox = self._mailboxes.get(identity)
        if mailbox is None:
            mailbox = _Mailbox(identity)
            self._mailboxes[identity] = mailbox
            mailbox.task = loop.create_task(self._run_mailbox(mailbox))
        mailbox.queue.put_nowait((apply, persist, future))

        return await future

    async def _run_mailbox(self, mailbox: _Mailbox):
        while True:
            apply, persist, future = await mailbox.queue.get()
            try:
                result = apply()
                if persist:
                    await self._persist()
                if not future.cancelled():
                    future.set_result(result)
            except Exception as e:
                logger.exception(f"Ledger operation failed for {mailbox.key}: {e}")
                if not future.cancelled():
                    future.set_exception(e)
            finally:
                mailbox.queue.task_done()

            if mailbox.queue.empty():
                if self._mailboxes.get(mailbox.key) is mailbox:
                    del self._mailboxes[mailbox.key]
                return

    async def _persist(self):
        async with self._persist_lock:
            snapshot = self.ledger.snapshot()
            try:
                await self.store.save(snapshot)
            except LedgerStoreError as e:
                # Memory stays authoritative; the next save rewrites everything.
                logger.error(f"Ledger persistence failed: {e}")

    async def _drain(self):
        pending = [m.queue.join() for m in list(self._mailboxes.values())]
        if pending:
            await asyncio.gather(*pending)


