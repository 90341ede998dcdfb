"""
Proctor Session - owns one monitored session from start to lockdown

The controller resolves the identity, refuses to start for a blocked
identity, acquires the camera/microphone stream, runs every detector on
its own task, and routes all infractions through one EventAggregator.
A "blocked" answer from the Authority tears everything down synchronously
and renders the lockdown screen; nothing in this controller can leave
that state again.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..config import Settings, settings as default_settings
from .aggregator import EventAggregator, WarningDisplay
from .authority import Authority
from .capabilities import (
    CameraProvider,
    CapabilityRegistry,
    DisplayProvider,
    IdentityProvider,
    MediaStream,
    PageContext,
    VideoTrack,
    WarningPresenter,
)
from .detectors import (
    AudioDetector,
    FaceDetector,
    InputGuard,
    MonitorDetector,
    MotionTracker,
    PeriodicDetector,
    ScreenShareDetector,
)
from .exceptions import MissingIdentityError
from .infractions import InfractionType
from .relay import create_relay_client
from .utils.logging import log_session_end, log_session_start

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    BLOCKED = "blocked"
    STOPPED = "stopped"


class CameraLivenessCheck(PeriodicDetector):
    """Reports CAMERA_OFF while the video track is not live"""

    name = "camera_liveness"

    def __init__(self, video: VideoTrack, report, interval: float = 5.0, identity: str = ""):
        super().__init__(interval, report, identity)
        self.video = video

    async def check(self):
        if not self.video.is_live():
            await self.report(InfractionType.CAMERA_OFF, "Camera not live")


class SessionController:
    """
    Manages a single proctoring session.

    Every dependency is injected so tests can drive the session with fakes:
    the Authority, identity storage, camera, display, page, presenter,
    relay and the capability registry the host calls through.
    """

    def __init__(
        self,
        authority: Authority,
        identity_provider: IdentityProvider,
        camera: CameraProvider,
        display: DisplayProvider,
        page: PageContext,
        presenter: Optional[WarningPresenter] = None,
        relay: Any = None,
        capabilities: Optional[CapabilityRegistry] = None,
        settings: Optional[Settings] = None,
        warning_display: Optional[WarningDisplay] = None
    ):
        self.authority = authority
        self.identity_provider = identity_provider
        self.camera = camera
        self.display_provider = display
        self.page = page
        self.presenter = presenter
        self.capabilities = capabilities or CapabilityRegistry()
        self.settings = settings or default_settings
        self._owns_relay = relay is None
        self.relay = relay if relay is not None else create_relay_client(self.settings)
        self.display = warning_display or WarningDisplay(presenter, self.settings.WARNING_MIN_INTERVAL)

        self.identity: Optional[str] = None
        self.state = SessionState.IDLE
        self.block_info: Optional[Dict[str, Any]] = None
        self.focused = True
        self.visible = True

        self.aggregator: Optional[EventAggregator] = None
        self.guard: Optional[InputGuard] = None
        self.stream: Optional[MediaStream] = None

        self.screen_share: Optional[ScreenShareDetector] = None
        self.monitor: Optional[MonitorDetector] = None
        self.motion: Optional[MotionTracker] = None
        self.face: Optional[FaceDetector] = None
        self.audio: Optional[AudioDetector] = None
        self.liveness: Optional[CameraLivenessCheck] = None

        self._camera_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._resize_tasks: Set[asyncio.Task] = set()
        self.relay_closing: Optional[asyncio.Task] = None
        self._camera_lost = asyncio.Event()
        self.camera_attempts = 0

    @property
    def active(self) -> bool:
        return self.state is SessionState.ACTIVE

    # ============== Lifecycle ==============

    async def start(self) -> SessionState:
        """
        Start monitoring.

        Raises:
            MissingIdentityError: no identity is stored for this session
        """
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Session already {self.state.value}")

        identity = (self.identity_provider.get_identity() or "").strip()
        if not identity:
            raise MissingIdentityError("An identity is required before monitoring can start")
        self.identity = identity

        status = await self.authority.is_blocked(identity)
        if status.blocked:
            logger.warning(f"Identity {identity} is blocked; monitoring not started")
            self.state = SessionState.BLOCKED
            self.block_info = status.info or {}
            self._render_lockdown(self.block_info)
            return self.state

        s = self.settings
        self.aggregator = EventAggregator(
            self.authority,
            identity,
            page=self.page,
            display=self.display,
            relay=self.relay,
            on_blocked=self.enforce_block,
        )
        self.state = SessionState.ACTIVE
        log_session_start(identity)

        self.guard = InputGuard(self._emit, self.page)
        self.guard.install(self.capabilities)

        self.screen_share = ScreenShareDetector(
            self.page,
            self._report,
            interval=s.SCREEN_SHARE_CHECK_INTERVAL,
            text_limit=s.SCREEN_SHARE_TEXT_LIMIT,
            notify=self.display.show,
            identity=identity,
        )
        self.monitor = MonitorDetector(
            self.display_provider,
            self._report,
            interval=s.MONITOR_CHECK_INTERVAL,
            ultrawide_ratio=s.MONITOR_ULTRAWIDE_RATIO,
            bounds_margin=s.MONITOR_BOUNDS_MARGIN,
            move_threshold=s.MONITOR_MOVE_THRESHOLD,
            move_interval=s.MONITOR_MOVE_SAMPLE_INTERVAL,
            notify=self.display.show,
            identity=identity,
        )
        self.motion = MotionTracker(
            self._report,
            interval=s.EYE_CHECK_INTERVAL,
            window_size=s.EYE_WINDOW_SIZE,
            recent_samples=s.EYE_RECENT_SAMPLES,
            velocity_threshold=s.EYE_VELOCITY_THRESHOLD,
            rapid_pairs=s.EYE_RAPID_PAIRS,
            suspicious_cycles=s.EYE_SUSPICIOUS_CYCLES,
            identity=identity,
        )

        self.screen_share.start()
        await self.monitor.initial_check()
        if not self.active:
            return self.state
        self.monitor.start()
        self.motion.start()

        self._camera_task = asyncio.get_running_loop().create_task(
            self._camera_loop(), name="camera_loop"
        )
        if self.relay is not None:
            self.relay.submit(self.relay.start_session(identity, self._client_info()))
            self._heartbeat_task = asyncio.get_running_loop().create_task(
                self._heartbeat_loop(), name="heartbeat"
            )

        self.display.show("Exam monitoring is now active", "info")
        return self.state

    async def stop(self):
        """Explicit stop: release everything without rendering a lockdown"""
        if self.state is not SessionState.ACTIVE:
            return
        self.state = SessionState.STOPPED
        self._teardown()
        self._end_relay_session()
        log_session_end(self.identity, "stopped", self._reported())

    def enforce_block(self, info: Dict[str, Any]):
        """Irreversible: stop every detector, release devices, lock the page"""
        if self.state is SessionState.BLOCKED:
            return
        self.state = SessionState.BLOCKED
        self.block_info = dict(info or {})
        self._teardown()
        self._render_lockdown(self.block_info)
        self._end_relay_session()
        log_session_end(self.identity, "blocked", self._reported())

    def _teardown(self):
        for detector in self._detectors():
            detector.stop()
        for task in (self._camera_task, self._heartbeat_task):
            if task is not None:
                task.cancel()
        self._camera_task = None
        self._heartbeat_task = None
        for task in list(self._resize_tasks):
            task.cancel()
        self._resize_tasks.clear()
        self._release_stream()
        if self.aggregator is not None:
            self.aggregator.close()

    def _detectors(self) -> List[PeriodicDetector]:
        return [
            d for d in (
                self.screen_share, self.monitor, self.motion,
                self.face, self.audio, self.liveness,
            )
            if d is not None
        ]

    def _render_lockdown(self, info: Dict[str, Any]):
        if self.presenter is not None:
            self.presenter.render_lockdown(self.identity, info)

    def _end_relay_session(self):
        if self.relay is None:
            return
        if self._owns_relay:
            self.relay_closing = asyncio.get_running_loop().create_task(
                self._close_relay(), name="relay_close"
            )
        else:
            self.relay.submit(self.relay.end_session())

    async def _close_relay(self):
        """End the relay session, then close the HTTP pool this controller opened"""
        try:
            await self.relay.wait_idle()
            await self.relay.end_session()
        finally:
            await self.relay.aclose()

    def _reported(self) -> int:
        return self.aggregator.submitted if self.aggregator is not None else 0

    # ============== Reporting ==============

    async def _report(self, infraction_type: Any, details: str = ""):
        if self.aggregator is None or not self.active:
            return None
        return await self.aggregator.report(infraction_type, details)

    def _emit(self, infraction_type: Any, details: str = ""):
        """Synchronous variant for event interceptors"""
        if self.aggregator is None or not self.active:
            return
        self.aggregator.report_nowait(infraction_type, details)

    # ============== Camera ==============

    async def _camera_loop(self):
        s = self.settings
        while self.active:
            self._release_stream()
            self.camera_attempts += 1
            try:
                stream = await self.camera.acquire()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                reason = str(e) or type(e).__name__
                logger.warning(f"Camera access error: {reason}")
                self.display.show("Camera access is required for exam monitoring!", "error")
                await self._report(InfractionType.CAMERA_OFF, f"Camera denied: {reason}")
                await asyncio.sleep(s.CAMERA_RETRY_INTERVAL)
                continue

            if not self.active:
                stream.stop()
                return

            self._attach_stream(stream)
            await self._camera_lost.wait()
            self._camera_lost.clear()

    def _attach_stream(self, stream: MediaStream):
        s = self.settings
        self.stream = stream
        stream.video.subscribe(self._on_track_event)

        self.face = FaceDetector(
            stream.video,
            self._report,
            interval=s.FACE_CHECK_INTERVAL,
            skin_ratio_threshold=s.FACE_SKIN_RATIO,
            missing_frames=s.FACE_MISSING_FRAMES,
            cell_size=s.MULTI_FACE_CELL_SIZE,
            brightness=s.MULTI_FACE_BRIGHTNESS,
            max_bright_cells=s.MULTI_FACE_MAX_BRIGHT_CELLS,
            identity=self.identity,
        )
        self.face.start()

        if stream.audio is not None:
            self.audio = AudioDetector(
                stream.audio,
                self._report,
                interval=s.AUDIO_CHECK_INTERVAL,
                threshold=s.AUDIO_LEVEL_THRESHOLD,
                consecutive_hits=s.AUDIO_CONSECUTIVE_HITS,
                identity=self.identity,
            )
            self.audio.start()

        self.liveness = CameraLivenessCheck(
            stream.video,
            self._report,
            interval=s.CAMERA_LIVENESS_INTERVAL,
            identity=self.identity,
        )
        self.liveness.start()
        logger.info(f"Camera acquired for {self.identity}")

    def _on_track_event(self, event: str):
        if not self.active:
            return
        if event == "ended":
            self._emit(InfractionType.CAMERA_OFF, "Camera track ended")
            self._camera_lost.set()
        elif event == "mute":
            self._emit(InfractionType.CAMERA_OFF, "Camera muted")

    def _release_stream(self):
        for detector in (self.face, self.audio, self.liveness):
            if detector is not None:
                detector.stop()
        self.face = None
        self.audio = None
        self.liveness = None
        if self.stream is not None:
            try:
                self.stream.stop()
            except Exception as e:
                logger.warning(f"Error releasing media stream: {e}")
            self.stream = None

    # ============== Host events ==============

    def on_visibility_change(self, hidden: bool):
        self.visible = not hidden
        if hidden and self.active:
            self._emit(InfractionType.TAB_SWITCH, "Page hidden - possible tab switch")

    def on_window_blur(self):
        self.focused = False
        if self.active:
            self._emit(InfractionType.WINDOW_BLUR, "Window lost focus")

    async def on_window_focus(self) -> bool:
        """Regained focus re-checks the block status; returns True when blocked"""
        self.focused = True
        return await self.check_blocked_status()

    def on_tab_activated(self, url: str):
        if self.active and url != self.page.url:
            self._emit(InfractionType.TAB_SWITCH, f"Switched to: {url}")

    def on_new_tab(self):
        if self.active:
            self._emit(InfractionType.NEW_TAB, "New tab opened")

    def on_browser_lost_focus(self):
        if self.active:
            self._emit(InfractionType.EXTERNAL_APP, "Browser lost focus - possible external application")

    def on_pointer_move(self, x: float, y: float, time_ms: float):
        if self.motion is not None and self.active:
            self.motion.record_move(x, y, time_ms)

    def on_resize(self) -> Optional[asyncio.Task]:
        if self.monitor is None or not self.active:
            return None
        task = asyncio.get_running_loop().create_task(self.monitor.on_resize())
        self._resize_tasks.add(task)
        task.add_done_callback(self._resize_tasks.discard)
        return task

    async def check_blocked_status(self) -> bool:
        if not self.identity:
            return False
        status = await self.authority.is_blocked(self.identity)
        if status.blocked:
            self.enforce_block(status.info or {})
            return True
        return False

    # ============== Relay ==============

    def _client_info(self) -> Dict[str, Any]:
        return {"page": self.page.url, "title": self.page.title}

    def system_info(self) -> Dict[str, Any]:
        return {
            "currentUrl": self.page.url,
            "windowFocused": self.focused,
            "visibility": "visible" if self.visible else "hidden",
            "monitoring": self.state.value,
            "cameraLive": bool(self.stream and self.stream.video.is_live()),
        }

    async def _heartbeat_loop(self):
        while self.active:
            await asyncio.sleep(self.settings.HEARTBEAT_INTERVAL)
            self.relay.submit(self.relay.heartbeat(self.system_info()))

    def get_summary(self) -> Dict[str, Any]:
        summary = {
            "identity": self.identity,
            "state": self.state.value,
            "camera_attempts": self.camera_attempts,
            "block_info": self.block_info,
        }
        if self.aggregator is not None:
            summary["infractions"] = self.aggregator.get_summary()
        if self.relay is not None:
            summary["relay"] = self.relay.status()
        return summary
