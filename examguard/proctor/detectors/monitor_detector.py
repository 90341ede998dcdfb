"""
Monitor Detector - flags extended desktops and additional displays

Signals, checked in order; the first positive one wins:
1. Screen aspect ratio above 2.5 (one wide virtual screen spanning displays)
2. Window positioned beyond the primary display bounds
3. Host "extended display" flag
4. Screen enumeration reporting more than one display
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .base import PeriodicDetector, ReportCallback
from ..capabilities import DisplayProvider, DisplayReport
from ..infractions import InfractionType

logger = logging.getLogger(__name__)


ULTRAWIDE_REASON = "Ultra-wide display detected (possible multiple monitors)"
OUT_OF_BOUNDS_REASON = "Window positioned outside primary screen bounds"
EXTENDED_REASON = "Extended display mode detected"


@dataclass
class MonitorCheck:
    """Outcome of one display evaluation"""
    detected: bool
    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


def evaluate_display(
    report: DisplayReport,
    ultrawide_ratio: float = 2.5,
    bounds_margin: int = 100
) -> MonitorCheck:
    """Apply the signals in priority order to one display report"""
    aspect_ratio = report.aspect_ratio
    if aspect_ratio > ultrawide_ratio:
        return MonitorCheck(True, ULTRAWIDE_REASON, {
            "screenWidth": report.screen_width,
            "screenHeight": report.screen_height,
            "aspectRatio": round(aspect_ratio, 2),
        })

    x, y = report.window_x, report.window_y
    if (x < -bounds_margin or y < -bounds_margin or
            x > report.screen_width + bounds_margin or
            y > report.screen_height + bounds_margin):
        return MonitorCheck(True, OUT_OF_BOUNDS_REASON, {"position": {"x": x, "y": y}})

    if report.is_extended:
        return MonitorCheck(True, EXTENDED_REASON)

    if report.screen_count is not None and report.screen_count > 1:
        return MonitorCheck(
            True,
            f"Multiple displays detected: {report.screen_count} screens",
            {"screenCount": report.screen_count},
        )

    return MonitorCheck(False)


class MonitorDetector(PeriodicDetector):
    """
    Periodic display check plus resize and window-move triggers.

    Every positive check reports MULTIPLE_MONITORS; persistence across
    checks is itself the evidence, so there is no further debounce.
    """

    name = "monitor_detector"

    DEFAULT_INTERVAL = 5.0
    DEFAULT_ULTRAWIDE_RATIO = 2.5
    DEFAULT_BOUNDS_MARGIN = 100
    DEFAULT_MOVE_THRESHOLD = 100
    DEFAULT_MOVE_INTERVAL = 2.0

    def __init__(
        self,
        display: DisplayProvider,
        report: ReportCallback,
        interval: float = DEFAULT_INTERVAL,
        ultrawide_ratio: float = DEFAULT_ULTRAWIDE_RATIO,
        bounds_margin: int = DEFAULT_BOUNDS_MARGIN,
        move_threshold: int = DEFAULT_MOVE_THRESHOLD,
        move_interval: float = DEFAULT_MOVE_INTERVAL,
        notify=None,
        identity: str = ""
    ):
        super().__init__(interval, report, identity)
        self.display = display
        self.ultrawide_ratio = ultrawide_ratio
        self.bounds_margin = bounds_margin
        self.move_threshold = move_threshold
        self.move_interval = move_interval
        self.notify = notify

        self.baseline_screen_count: Optional[int] = None
        self._last_position: Optional[Tuple[int, int]] = None
        self._move_task: Optional[asyncio.Task] = None

    async def evaluate(self) -> MonitorCheck:
        """Evaluate the current display; errors fail open"""
        try:
            report = await self.display.report()
            return evaluate_display(report, self.ultrawide_ratio, self.bounds_margin)
        except Exception as e:
            logger.warning(f"Monitor detection error: {e}")
            return MonitorCheck(False)

    async def initial_check(self) -> MonitorCheck:
        """Establish the baseline screen count and report a bad starting setup"""
        result = await self.evaluate()
        if result.detected:
            self.baseline_screen_count = result.details.get("screenCount") or 2
            if self.notify is not None:
                self.notify("Multiple monitors detected! Please disconnect additional displays.", "error")
            await self.report(InfractionType.MULTIPLE_MONITORS, result.reason)
        else:
            self.baseline_screen_count = 1
        self._last_position = self._window_position()
        return result

    async def check(self):
        result = await self.evaluate()
        if result.detected:
            if self.notify is not None:
                self.notify("Multiple monitors still detected!", "error")
            await self.report(InfractionType.MULTIPLE_MONITORS, result.reason)

    async def on_resize(self) -> MonitorCheck:
        """Host window-resize event"""
        result = await self.evaluate()
        if result.detected:
            await self.report(
                InfractionType.MULTIPLE_MONITORS,
                f"Screen configuration changed: {result.reason}"
            )
        return result

    def observe_move(self, position: Optional[Tuple[int, int]]) -> bool:
        """True when the window moved beyond the threshold since the last sample"""
        previous = self._last_position
        self._last_position = position
        if previous is None or position is None:
            return False
        return (abs(position[0] - previous[0]) > self.move_threshold or
                abs(position[1] - previous[1]) > self.move_threshold)

    async def check_move(self):
        if not self.observe_move(self._window_position()):
            return
        result = await self.evaluate()
        if result.detected:
            await self.report(InfractionType.MULTIPLE_MONITORS, "Window moved to different display")

    def _window_position(self) -> Optional[Tuple[int, int]]:
        try:
            return self.display.window_position()
        except Exception as e:
            logger.warning(f"Window position unavailable: {e}")
            return None

    async def _watch_moves(self):
        while True:
            await asyncio.sleep(self.move_interval)
            try:
                await self.check_move()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.errors += 1
                logger.warning(f"Window move check failed: {e}")

    def start(self) -> asyncio.Task:
        task = super().start()
        if self._move_task is None or self._move_task.done():
            self._move_task = asyncio.get_running_loop().create_task(
                self._watch_moves(), name=f"{self.name}_moves"
            )
        return task

    def stop(self):
        super().stop()
        if self._move_task is not None:
            self._move_task.cancel()
            self._move_task = None
