"""
Event Aggregator - forwards qualified infractions to the Authority

Detectors hand over (type, details) pairs. The aggregator tags them with
the session identity and the current page, submits recordInfraction, and
reacts to the answer: a rate-limited warning notice for "warned", the
block callback for "blocked". It also keeps per-type counters for the
session summary and mirrors each recorded infraction to the relay.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from .authority import Authority
from .capabilities import PageContext, WarningPresenter
from .infractions import describe, isoformat, type_name, utc_now
from .messages import RecordInfractionResponse

logger = logging.getLogger(__name__)


class WarningDisplay:
    """
    Global limiter for user-visible notices: at most one per min_interval.

    Suppressing a notice never affects what is recorded.
    """

    DEFAULT_MIN_INTERVAL = 1.0

    def __init__(
        self,
        presenter: Optional[WarningPresenter],
        min_interval: float = DEFAULT_MIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        self.presenter = presenter
        self.min_interval = min_interval
        self.clock = clock
        self._last_shown: Optional[float] = None
        self.shown = 0
        self.suppressed = 0

    def show(self, message: str, severity: str = "warning") -> bool:
        """Show a notice unless one was shown less than min_interval ago"""
        now = self.clock()
        if self._last_shown is not None and now - self._last_shown < self.min_interval:
            self.suppressed += 1
            return False
        self._last_shown = now
        self.shown += 1
        if self.presenter is not None:
            self.presenter.show_warning(message, severity)
        return True


class EventAggregator:
    """
    Single funnel from every detector to the Authority for one session.
    """

    def __init__(
        self,
        authority: Authority,
        identity: str,
        page: Optional[PageContext] = None,
        display: Optional[WarningDisplay] = None,
        relay: Any = None,
        on_blocked: Optional[Callable[[Dict[str, Any]], None]] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Args:
            authority: Ledger authority receiving recordInfraction requests
            identity: Monitored identity
            page: Page the infractions originate from
            display: Rate-limited warning display
            relay: Optional RelayClient mirrored with activity logs
            on_blocked: Called with the block info when the identity is blocked
            clock: Returns the current UTC time
        """
        self.authority = authority
        self.identity = identity
        self.page = page
        self.display = display or WarningDisplay(None)
        self.relay = relay
        self.on_blocked = on_blocked
        self.clock = clock

        self.closed = False
        self.counts: Dict[str, int] = {}
        self.submitted = 0
        self.rejected = 0
        self._pending: Set[asyncio.Task] = set()

    @property
    def page_url(self) -> str:
        return self.page.url if self.page is not None else ""

    async def report(self, infraction_type: Any, details: str = "") -> Optional[RecordInfractionResponse]:
        """Submit one infraction and act on the Authority's decision"""
        name = type_name(infraction_type)
        if self.closed:
            logger.debug(f"Dropping {name} after session close")
            return None

        self.submitted += 1
        response = await self.authority.record_infraction(
            self.identity, name, details, self.page_url
        )

        if response.ok:
            self.counts[name] = self.counts.get(name, 0) + 1
            self._mirror_to_relay(name, details)
        else:
            self.rejected += 1

        if response.blocked:
            info = dict(response.info or {})
            info.setdefault("reason", response.block_reason or response.reason)
            info.setdefault("blockedAt", isoformat(self.clock()))
            if self.on_blocked is not None:
                self.on_blocked(info)
        elif response.ok:
            self.display.show(
                f"{response.message}\nWarning {response.warnings}/{response.threshold}",
                "warning"
            )

        return response

    def report_nowait(self, infraction_type: Any, details: str = "") -> Optional[asyncio.Task]:
        """Schedule report() from synchronous code such as event interceptors"""
        if self.closed:
            return None
        task = asyncio.get_running_loop().create_task(self.report(infraction_type, details))
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Infraction report failed: {task.exception()!r}")

    async def wait_idle(self):
        """Wait for every scheduled report to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _mirror_to_relay(self, name: str, details: str):
        if self.relay is None:
            return
        self.relay.submit(self.relay.log_activity({
            "identity": self.identity,
            "type": "INFRACTION",
            "severity": describe(name).severity,
            "infractionType": name,
            "details": details,
            "page": self.page_url,
            "timestamp": isoformat(self.clock()),
        }))

    def close(self):
        """Stop accepting new reports; in-flight ones finish normally"""
        self.closed = True

    def get_summary(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "submitted": self.submitted,
            "rejected": self.rejected,
            "counts": dict(self.counts),
            "warnings_shown": self.display.shown,
            "warnings_suppressed": self.display.suppressed,
        }
