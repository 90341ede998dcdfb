"""
Motion Tracker - pointer velocity heuristic standing in for eye tracking

Without gaze hardware, rapid back-and-forth pointer movement is used as
the signal for a candidate glancing at something off-screen.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from .base import PeriodicDetector, ReportCallback
from ..infractions import InfractionType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PointerSample:
    x: float
    y: float
    time_ms: float


class MotionTracker(PeriodicDetector):
    """
    Keeps the last `window_size` pointer samples and, every interval,
    counts fast pairs among the most recent `recent_samples`.

    A pair is fast when |dx|/dt or |dy|/dt exceeds `velocity_threshold`
    (units per millisecond). An interval with more than `rapid_pairs` fast
    pairs is suspicious; `suspicious_cycles` suspicious intervals in a row
    report EYE_MOVEMENT and clear both the streak and the window.
    """

    name = "motion_tracker"

    DEFAULT_INTERVAL = 3.0
    DEFAULT_WINDOW_SIZE = 50
    DEFAULT_RECENT_SAMPLES = 20
    DEFAULT_VELOCITY_THRESHOLD = 2.0
    DEFAULT_RAPID_PAIRS = 10
    DEFAULT_SUSPICIOUS_CYCLES = 2
    MIN_SAMPLES = 10

    def __init__(
        self,
        report: ReportCallback,
        interval: float = DEFAULT_INTERVAL,
        window_size: int = DEFAULT_WINDOW_SIZE,
        recent_samples: int = DEFAULT_RECENT_SAMPLES,
        velocity_threshold: float = DEFAULT_VELOCITY_THRESHOLD,
        rapid_pairs: int = DEFAULT_RAPID_PAIRS,
        suspicious_cycles: int = DEFAULT_SUSPICIOUS_CYCLES,
        identity: str = ""
    ):
        super().__init__(interval, report, identity)
        self.recent_samples = recent_samples
        self.velocity_threshold = velocity_threshold
        self.rapid_pairs = rapid_pairs
        self.suspicious_cycles = suspicious_cycles

        self.samples: Deque[PointerSample] = deque(maxlen=window_size)
        self.suspicious_streak = 0

    def record_move(self, x: float, y: float, time_ms: float):
        """Pointer move event from the host"""
        self.samples.append(PointerSample(x, y, time_ms))

    def count_rapid_pairs(self, samples: List[PointerSample]) -> int:
        rapid = 0
        for previous, current in zip(samples, samples[1:]):
            dt = current.time_ms - previous.time_ms
            if dt <= 0:
                continue
            vx = abs(current.x - previous.x) / dt
            vy = abs(current.y - previous.y) / dt
            if vx > self.velocity_threshold or vy > self.velocity_threshold:
                rapid += 1
        return rapid

    def observe(self) -> Optional[str]:
        """Evaluate one interval; returns details when EYE_MOVEMENT qualifies"""
        if len(self.samples) < self.MIN_SAMPLES:
            return None

        recent = list(self.samples)[-self.recent_samples:]
        if self.count_rapid_pairs(recent) <= self.rapid_pairs:
            self.suspicious_streak = 0
            return None

        self.suspicious_streak += 1
        if self.suspicious_streak >= self.suspicious_cycles:
            self.suspicious_streak = 0
            self.samples.clear()
            return "Suspicious rapid eye/mouse movements"
        return None

    async def check(self):
        details = self.observe()
        if details:
            await self.report(InfractionType.EYE_MOVEMENT, details)
