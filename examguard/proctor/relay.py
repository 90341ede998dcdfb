"""
Relay Client - best-effort reporting to the external authority service

Endpoints (JSON over HTTP):
- POST /api/session/start  {identity, startTime, clientInfo} -> {sessionId}
- POST /api/session/end    {sessionId, identity, endTime}
- POST /api/activity/log   {sessionId, identity, type, severity, infractionType, details, page, timestamp}
- POST /api/activity/bulk  {sessionId, identity, activities: [...]}
- POST /api/heartbeat      {sessionId, identity, timestamp, systemInfo}

Nothing here may gate local enforcement. Calls are fire-and-forget via
submit(); failures are logged, flip the `connected` indicator, and activity
logs are buffered and flushed in one bulk call after the next success.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Any, Callable, Coroutine, Deque, Dict, Optional, Set

import httpx

from .infractions import isoformat, utc_now

logger = logging.getLogger(__name__)


class RelayClient:
    """
    Async client for the relay service.

    Usage:
        relay = RelayClient("http://localhost:3000")
        relay.submit(relay.start_session("s-42", {"platform": "linux"}))
    """

    DEFAULT_TIMEOUT = 5.0
    DEFAULT_BUFFER_SIZE = 500

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.clock = clock
        self._client = client
        self._owns_client = client is None

        self.session_id: Optional[str] = None
        self.identity: Optional[str] = None
        self.connected: Optional[bool] = None  # None until the first call completes
        self.last_error: Optional[str] = None
        self.pending: Deque[Dict[str, Any]] = deque(maxlen=buffer_size)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    # ============== Fire-and-forget ==============

    def submit(self, coro: Coroutine) -> asyncio.Task:
        """Run a relay call in the background; never raises into the caller"""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = await self.client.post(path, json=payload)
            if response.status_code >= 400:
                raise httpx.HTTPStatusError(
                    f"Relay returned {response.status_code}",
                    request=response.request,
                    response=response,
                )
            data = response.json() if response.content else {}
        except (httpx.HTTPError, ValueError) as e:
            self.connected = False
            self.last_error = str(e)
            logger.warning(f"[RELAY] {path} failed: {e}")
            return None

        self.connected = True
        self.last_error = None
        return data

    # ============== Calls ==============

    async def start_session(self, identity: str, client_info: Optional[Dict[str, Any]] = None) -> Optional[str]:
        self.identity = identity
        data = await self._post("/api/session/start", {
            "identity": identity,
            "startTime": isoformat(self.clock()),
            "clientInfo": client_info or {},
        })
        if data and data.get("sessionId"):
            self.session_id = data["sessionId"]
            logger.info(f"[RELAY] Session started: {self.session_id}")
        return self.session_id

    async def end_session(self) -> bool:
        if self.session_id is None:
            return False
        data = await self._post("/api/session/end", {
            "sessionId": self.session_id,
            "identity": self.identity,
            "endTime": isoformat(self.clock()),
        })
        return data is not None

    async def log_activity(self, activity: Dict[str, Any]) -> bool:
        """Send one activity; buffered on failure for the next bulk flush"""
        payload = {"sessionId": self.session_id, "identity": self.identity, **activity}
        if payload.get("sessionId") is None:
            self.pending.append(payload)
            return False

        data = await self._post("/api/activity/log", payload)
        if data is None:
            self.pending.append(payload)
            return False

        await self.flush()
        return True

    async def flush(self) -> int:
        """Send buffered activities in one bulk call; returns the count sent"""
        if not self.pending or self.session_id is None:
            return 0

        activities = []
        while self.pending:
            activity = self.pending.popleft()
            activity["sessionId"] = activity.get("sessionId") or self.session_id
            activities.append(activity)

        data = await self._post("/api/activity/bulk", {
            "sessionId": self.session_id,
            "identity": self.identity,
            "activities": activities,
        })
        if data is None:
            self.pending.extendleft(reversed(activities))
            return 0
        logger.info(f"[RELAY] Flushed {len(activities)} buffered activities")
        return len(activities)

    async def heartbeat(self, system_info: Optional[Dict[str, Any]] = None) -> bool:
        if self.session_id is None:
            return False
        data = await self._post("/api/heartbeat", {
            "sessionId": self.session_id,
            "identity": self.identity,
            "timestamp": isoformat(self.clock()),
            "systemInfo": system_info or {},
        })
        if data is not None:
            await self.flush()
        return data is not None

    def status(self) -> Dict[str, Any]:
        """Non-blocking status indicator for the host UI"""
        return {
            "connected": self.connected,
            "sessionId": self.session_id,
            "pending": len(self.pending),
            "lastError": self.last_error,
        }

    async def aclose(self):
        await self.wait_idle()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def create_relay_client(settings) -> Optional[RelayClient]:
    """RelayClient for settings.RELAY_URL, or None when no relay is configured"""
    if not settings.RELAY_URL:
        return None
    return RelayClient(
        settings.RELAY_URL,
        timeout=settings.RELAY_TIMEOUT,
        buffer_size=settings.RELAY_BUFFER_SIZE,
    )
