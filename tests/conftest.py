"""
Pytest Configuration for examguard Tests

Fakes for every host capability so sessions and detectors run without a
camera, microphone, display or browser.
"""
import pytest
import numpy as np
from typing import Any, Dict, List, Optional

from examguard.config import Settings
from examguard.proctor.authority import Authority
from examguard.proctor.capabilities import (
    AudioTrack,
    CameraProvider,
    DisplayProvider,
    DisplayReport,
    IdentityProvider,
    MediaStream,
    PageContext,
    VideoTrack,
    WarningPresenter,
)
from examguard.proctor.ledger import InfractionLedger
from examguard.proctor.storage import MemoryLedgerStore


# ============== Frames ==============

def solid_frame(rgb=(40, 40, 40), width=200, height=200) -> np.ndarray:
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :] = rgb
    return frame


def face_frame(width=200, height=200) -> np.ndarray:
    """Dark frame with a skin-toned patch over the centre, too small to light a whole grid cell"""
    frame = solid_frame((20, 20, 20), width, height)
    frame[3 * height // 10:7 * height // 10, 3 * width // 10:7 * width // 10] = (200, 120, 90)
    return frame


# ============== Host fakes ==============

class FakeVideoTrack(VideoTrack):
    def __init__(self, frame: Optional[np.ndarray] = None, live: bool = True):
        super().__init__()
        self.frame = face_frame() if frame is None else frame
        self.live = live
        self.stopped = False

    def read_frame(self):
        return self.frame

    def is_live(self) -> bool:
        return self.live and not self.stopped

    def stop(self):
        self.stopped = True


class FakeAudioTrack(AudioTrack):
    def __init__(self, level: int = 0):
        self.level = level
        self.closed = False

    def read_frequency_data(self):
        return np.full(128, self.level, dtype=np.uint8)

    def close(self):
        self.closed = True


class FakeCamera(CameraProvider):
    """Returns queued outcomes in order; an exception entry is raised"""

    def __init__(self, outcomes: Optional[List[Any]] = None):
        self.outcomes = list(outcomes or [])
        self.attempts = 0
        self.streams: List[MediaStream] = []

    async def acquire(self) -> MediaStream:
        self.attempts += 1
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        stream = outcome or MediaStream(FakeVideoTrack(), FakeAudioTrack())
        self.streams.append(stream)
        return stream


class FakeDisplay(DisplayProvider):
    def __init__(self, report: Optional[DisplayReport] = None, position=(0, 0)):
        self.current = report or DisplayReport(1920, 1080, screen_count=1)
        self.position = position

    async def report(self) -> DisplayReport:
        return self.current

    def window_position(self):
        return self.position


class FakePage(PageContext):
    def __init__(self, url="https://exam.example.com/test/1", title="Final Exam", text="Question 1"):
        self._url = url
        self._title = title
        self.text = text

    @property
    def url(self) -> str:
        return self._url

    @property
    def title(self) -> str:
        return self._title

    def visible_text(self) -> str:
        return self.text


class FakeIdentity(IdentityProvider):
    def __init__(self, identity: Optional[str] = "student-1"):
        self.identity = identity

    def get_identity(self):
        return self.identity

    def clear_identity(self):
        self.identity = None


class RecordingPresenter(WarningPresenter):
    def __init__(self):
        self.warnings: List[tuple] = []
        self.lockdowns: List[tuple] = []

    def show_warning(self, message: str, severity: str = "warning"):
        self.warnings.append((message, severity))

    def render_lockdown(self, identity: str, info: Dict[str, Any]):
        self.lockdowns.append((identity, info))


# ============== Fixtures ==============

@pytest.fixture
def ledger():
    return InfractionLedger(threshold=2)


@pytest.fixture
def store():
    return MemoryLedgerStore()


@pytest.fixture
def authority(ledger, store):
    return Authority(ledger, store)


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def fast_settings():
    """Every periodic check parked far in the future unless a test lowers it"""
    return Settings(
        WARNING_MIN_INTERVAL=0.0,
        FACE_CHECK_INTERVAL=60.0,
        AUDIO_CHECK_INTERVAL=60.0,
        EYE_CHECK_INTERVAL=60.0,
        SCREEN_SHARE_CHECK_INTERVAL=60.0,
        MONITOR_CHECK_INTERVAL=60.0,
        MONITOR_MOVE_SAMPLE_INTERVAL=60.0,
        CAMERA_RETRY_INTERVAL=0.01,
        CAMERA_LIVENESS_INTERVAL=60.0,
        HEARTBEAT_INTERVAL=60.0,
    )
