"""
Capabilities - interfaces to the host environment

The session controller never touches the host directly. Cameras, displays,
the page, identity storage and the warning overlay are reached through the
provider interfaces below, and host entry points that must be denied during
an exam (screen capture, window.open, clipboard commands) are wrapped in
GuardedCapability objects held by a CapabilityRegistry. Tests swap any of
them for stubs.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from .exceptions import CapabilityDenied
from .infractions import InfractionType

logger = logging.getLogger(__name__)


TrackListener = Callable[[str], None]
ReportFn = Callable[[InfractionType, str], None]


# ============== Media ==============

class VideoTrack(ABC):
    """Live camera track; emits "ended" and "mute" to listeners"""

    def __init__(self):
        self._listeners: List[TrackListener] = []

    def subscribe(self, listener: TrackListener):
        self._listeners.append(listener)

    def emit(self, event: str):
        for listener in list(self._listeners):
            listener(event)

    @abstractmethod
    def read_frame(self) -> Optional[np.ndarray]:
        """Current RGB(A) frame, or None while the camera warms up"""

    async def grab_frame(self) -> Optional[np.ndarray]:
        """Awaitable read; tracks backed by a blocking device override this"""
        return self.read_frame()

    @abstractmethod
    def is_live(self) -> bool:
        """True while the track is live and enabled"""

    @abstractmethod
    def stop(self):
        """Stop the track and release the device"""


class AudioTrack(ABC):
    """Microphone track with its analysis graph"""

    @abstractmethod
    def read_frequency_data(self) -> np.ndarray:
        """Byte frequency buffer (0-255 per bin)"""

    @abstractmethod
    def close(self):
        """Stop capture and tear down the analysis graph"""


@dataclass
class MediaStream:
    """Camera + microphone stream owned by one session controller"""
    video: VideoTrack
    audio: Optional[AudioTrack] = None

    def stop(self):
        try:
            self.video.stop()
        finally:
            if self.audio is not None:
                self.audio.close()


class CameraProvider(ABC):
    @abstractmethod
    async def acquire(self) -> MediaStream:
        """Open camera and microphone; raises CameraUnavailableError"""


# ============== Display & page ==============

@dataclass
class DisplayReport:
    """What the host can tell about the display configuration"""
    screen_width: int
    screen_height: int
    window_x: int = 0
    window_y: int = 0
    is_extended: Optional[bool] = None  # None when the host cannot tell
    screen_count: Optional[int] = None  # None when enumeration is unavailable or denied

    @property
    def aspect_ratio(self) -> float:
        if self.screen_height <= 0:
            return 0.0
        return self.screen_width / self.screen_height

    def to_dict(self) -> Dict[str, Any]:
        return {
            "screenWidth": self.screen_width,
            "screenHeight": self.screen_height,
            "windowX": self.window_x,
            "windowY": self.window_y,
            "isExtended": self.is_extended,
            "screenCount": self.screen_count,
        }


class DisplayProvider(ABC):
    @abstractmethod
    async def report(self) -> DisplayReport:
        """Current display configuration"""

    @abstractmethod
    def window_position(self) -> Tuple[int, int]:
        """Current (x, y) of the window"""


class PageContext(ABC):
    """The monitored page"""

    @property
    @abstractmethod
    def url(self) -> str:
        ...

    @property
    @abstractmethod
    def title(self) -> str:
        ...

    @abstractmethod
    def visible_text(self) -> str:
        ...


# ============== Identity & presentation ==============

class IdentityProvider(ABC):
    """Identity persisted by the host across reloads"""

    @abstractmethod
    def get_identity(self) -> Optional[str]:
        ...

    def clear_identity(self):
        """Forget the stored identity (host may prompt again)"""


class WarningPresenter(ABC):
    """Renders notices and the terminal lockdown screen"""

    @abstractmethod
    def show_warning(self, message: str, severity: str = "warning"):
        ...

    @abstractmethod
    def render_lockdown(self, identity: str, info: Dict[str, Any]):
        ...


# ============== Guarded capabilities ==============

class GuardedCapability:
    """
    Stands in for a host entry point that must not run during an exam.

    Calling it reports the infraction, then either raises CapabilityDenied
    (deny=True) or returns the fallback value.
    """

    def __init__(
        self,
        name: str,
        infraction_type: InfractionType,
        details: str,
        report: ReportFn,
        deny: bool = False,
        fallback: Any = None
    ):
        self.name = name
        self.infraction_type = infraction_type
        self.details = details
        self.report = report
        self.deny = deny
        self.fallback = fallback
        self.invocations = 0

    def __call__(self, *args, **kwargs) -> Any:
        self.invocations += 1
        logger.info(f"Guarded capability invoked: {self.name}")
        self.report(self.infraction_type, self.details)
        if self.deny:
            raise CapabilityDenied(self.name)
        return self.fallback


class CapabilityRegistry:
    """Named host entry points; the host calls invoke() instead of the original"""

    SCREEN_CAPTURE = "screen_capture"
    WINDOW_OPEN = "window_open"
    EXEC_COMMAND = "exec_command"

    def __init__(self):
        self._capabilities: Dict[str, Callable[..., Any]] = {}

    def install(self, name: str, capability: Callable[..., Any]):
        self._capabilities[name] = capability

    def get(self, name: str) -> Optional[Callable[..., Any]]:
        return self._capabilities.get(name)

    def installed(self) -> List[str]:
        return sorted(self._capabilities)

    def invoke(self, name: str, *args, **kwargs) -> Any:
        capability = self._capabilities.get(name)
        if capability is None:
            raise KeyError(f"Capability not installed: {name}")
        return capability(*args, **kwargs)
