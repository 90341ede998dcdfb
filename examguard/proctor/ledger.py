"""
Infraction Ledger - per-identity escalation state machine

States per identity:
    Active(warnings = 0..threshold) --(warnings > threshold)--> Blocked

The ledger itself is plain synchronous state. Every mutation runs to
completion without awaiting, and callers go through the Authority, which
serializes requests per identity. The ledger never performs I/O.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .infractions import (
    BlockRecord,
    IdentityRecord,
    InfractionEvent,
    isoformat,
    utc_now,
)

logger = logging.getLogger(__name__)


BLOCK_REASON = "Exceeded infraction threshold"


class Outcome(str, Enum):
    """Result of a record request"""
    WARNED = "warned"
    BLOCKED = "blocked"
    ALREADY_BLOCKED = "already-blocked"


@dataclass(frozen=True)
class RecordOutcome:
    """What happened to a single record request"""
    outcome: Outcome
    count: int = 0
    warnings: int = 0
    message: str = ""
    block: Optional[BlockRecord] = None


class InfractionLedger:
    """
    Authoritative infraction totals and block records for every identity.

    With the default threshold of 2 an identity is warned on its first and
    second infraction and blocked on the third.
    """

    DEFAULT_THRESHOLD = 2
    DEFAULT_SNAPSHOT_EVENTS = 5

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        snapshot_events: int = DEFAULT_SNAPSHOT_EVENTS,
        history_limit: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Args:
            threshold: Warnings allowed before the next infraction blocks
            snapshot_events: Number of recent events copied into a BlockRecord
            history_limit: Max events retained per identity (None = unbounded)
            clock: Returns the current UTC time
        """
        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        self.threshold = threshold
        self.snapshot_events = snapshot_events
        self.history_limit = history_limit
        self.clock = clock

        self.infractions: Dict[str, IdentityRecord] = {}
        self.blocked_ids: Dict[str, BlockRecord] = {}

    def record(
        self,
        identity: str,
        infraction_type: Any,
        details: str = "",
        page: str = ""
    ) -> RecordOutcome:
        """Apply one infraction to an identity and decide warn vs. block."""
        existing_block = self.blocked_ids.get(identity)
        if existing_block is not None:
            return RecordOutcome(outcome=Outcome.ALREADY_BLOCKED, block=existing_block)

        record = self.infractions.get(identity)
        if record is None:
            record = IdentityRecord()
            self.infractions[identity] = record

        event = InfractionEvent.create(infraction_type, details, page, self.clock())
        record.append(event, self.history_limit)
        record.count += 1
        record.warnings += 1

        if record.warnings > self.threshold:
            recent = record.events[-self.snapshot_events:] if self.snapshot_events > 0 else []
            block = BlockRecord(
                blocked_at=isoformat(self.clock()),
                reason=BLOCK_REASON,
                total_infractions=record.count,
                last_events=tuple(recent),
            )
            self.blocked_ids[identity] = block
            logger.warning(
                f"Identity {identity} blocked after {record.warnings} warnings "
                f"({record.count} infractions)"
            )
            return RecordOutcome(
                outcome=Outcome.BLOCKED,
                count=record.count,
                warnings=record.warnings,
                message=event.message,
                block=block,
            )

        return RecordOutcome(
            outcome=Outcome.WARNED,
            count=record.count,
            warnings=record.warnings,
            message=event.message,
        )

    def is_blocked(self, identity: str) -> Optional[BlockRecord]:
        """Return the BlockRecord when blocked, else None"""
        return self.blocked_ids.get(identity)

    def unblock(self, identity: str) -> bool:
        """
        Lift a block and reset the identity's totals.

        Event history is retained. Unblocking an Active identity is a no-op.
        """
        if self.blocked_ids.pop(identity, None) is None:
            return True
        record = self.infractions.get(identity)
        if record is not None:
            record.count = 0
            record.warnings = 0
        logger.info(f"Identity {identity} unblocked")
        return True

    def clear(self):
        """Reset the ledger to empty"""
        self.infractions = {}
        self.blocked_ids = {}

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Full ledger state in its persisted layout"""
        return {
            "infractions": {k: v.to_dict() for k, v in self.infractions.items()},
            "blockedIds": {k: v.to_dict() for k, v in self.blocked_ids.items()},
        }

    def load(self, snapshot: Optional[Dict[str, Any]]):
        """Replace current state with a persisted snapshot"""
        snapshot = snapshot or {}
        self.infractions = {
            k: IdentityRecord.from_dict(v)
            for k, v in (snapshot.get("infractions") or {}).items()
        }
        self.blocked_ids = {
            k: BlockRecord.from_dict(v)
            for k, v in (snapshot.get("blockedIds") or {}).items()
        }
