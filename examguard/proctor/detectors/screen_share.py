"""
Screen Share Detector - spots remote-access and screen-share tools by name
"""

import logging
from typing import Optional, Sequence

from .base import PeriodicDetector, ReportCallback
from ..capabilities import PageContext
from ..infractions import InfractionType

logger = logging.getLogger(__name__)


REMOTE_ACCESS_INDICATORS = (
    "anydesk",
    "teamviewer",
    "quickassist",
    "quick assist",
    "remote desktop",
    "chrome remote",
    "zoom share",
    "webex",
    "gotomeeting",
    "join.me",
    "screenconnect",
    "logmein",
    "splashtop",
    "vnc viewer",
    "remotepc",
)


def find_indicator(
    title: str,
    url: str,
    text: str,
    indicators: Sequence[str] = REMOTE_ACCESS_INDICATORS,
    text_limit: int = 5000
) -> Optional[str]:
    """First indicator found in title, URL or the leading visible text"""
    title = (title or "").lower()
    url = (url or "").lower()
    text = (text or "")[:text_limit].lower()

    for indicator in indicators:
        if indicator in title or indicator in url or indicator in text:
            return indicator
    return None


class ScreenShareDetector(PeriodicDetector):
    """Reports SCREEN_SHARE on every check that finds an indicator"""

    name = "screen_share_detector"

    DEFAULT_INTERVAL = 3.0
    DEFAULT_TEXT_LIMIT = 5000

    def __init__(
        self,
        page: PageContext,
        report: ReportCallback,
        interval: float = DEFAULT_INTERVAL,
        text_limit: int = DEFAULT_TEXT_LIMIT,
        indicators: Sequence[str] = REMOTE_ACCESS_INDICATORS,
        notify=None,
        identity: str = ""
    ):
        super().__init__(interval, report, identity)
        self.page = page
        self.text_limit = text_limit
        self.indicators = tuple(indicators)
        self.notify = notify

    def observe(self) -> Optional[str]:
        """Indicator currently visible on the page, if any"""
        return find_indicator(
            self.page.title,
            self.page.url,
            self.page.visible_text(),
            self.indicators,
            self.text_limit,
        )

    async def check(self):
        indicator = self.observe()
        if not indicator:
            return
        if self.notify is not None:
            self.notify(
                f"Screen sharing software detected: {indicator}. "
                "This is not allowed during exams!",
                "error"
            )
        await self.report(InfractionType.SCREEN_SHARE, f"Detected: {indicator}")
