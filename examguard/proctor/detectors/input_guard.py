"""
Input Guard - synchronous interceptors for clipboard, shortcuts and navigation

Each handler returns True when the host must cancel the action's default
effect. Every intercepted attempt is reported; there is no debounce.
"""

import logging
from typing import Callable, Optional
from urllib.parse import urljoin, urlsplit

from ..capabilities import CapabilityRegistry, GuardedCapability, PageContext
from ..infractions import InfractionType

logger = logging.getLogger(__name__)


EmitFn = Callable[[InfractionType, str], None]

CLIPBOARD_ACTIONS = ("copy", "paste", "cut")
FORBIDDEN_SHORTCUT_KEYS = ("c", "v", "x", "a", "s", "p")
DEVTOOLS_SHORTCUT_KEYS = ("i", "j", "c")


def origin_of(url: str) -> tuple:
    parts = urlsplit(url)
    port = parts.port
    if port is None:
        port = {"http": 80, "https": 443}.get(parts.scheme)
    return (parts.scheme, (parts.hostname or "").lower(), port)


def resolve_off_origin(target: str, page_url: str) -> Optional[str]:
    """Hostname of `target` when it resolves outside the page's origin"""
    if not target:
        return None
    absolute = urljoin(page_url, target)
    if origin_of(absolute) == origin_of(page_url):
        return None
    return urlsplit(absolute).hostname or absolute


class InputGuard:
    """Clipboard, keyboard, navigation and popup interception"""

    def __init__(self, emit: EmitFn, page: Optional[PageContext] = None):
        self.emit = emit
        self.page = page

    @property
    def page_url(self) -> str:
        return self.page.url if self.page is not None else ""

    def on_clipboard(self, action: str) -> bool:
        """copy / paste / cut events"""
        if action not in CLIPBOARD_ACTIONS:
            return False
        self.emit(InfractionType.COPY_PASTE, f"Action: {action}")
        return True

    def on_context_menu(self) -> bool:
        self.emit(InfractionType.COPY_PASTE, "Context menu attempt")
        return True

    def on_key(self, key: str, ctrl: bool = False, meta: bool = False, shift: bool = False) -> bool:
        """Key-down; cancels clipboard/save/print shortcuts and dev-tools keys"""
        modifier = ctrl or meta
        lowered = (key or "").lower()

        if modifier and lowered in FORBIDDEN_SHORTCUT_KEYS:
            self.emit(InfractionType.COPY_PASTE, f"Keyboard shortcut: Ctrl+{key}")
            return True

        if key == "F12" or (modifier and shift and lowered in DEVTOOLS_SHORTCUT_KEYS):
            self.emit(InfractionType.COPY_PASTE, "Dev tools attempt")
            return True

        return False

    def on_link_click(self, href: str) -> bool:
        host = resolve_off_origin(href, self.page_url)
        if host is None:
            return False
        self.emit(InfractionType.NAVIGATION, f"External link blocked: {host}")
        return True

    def on_form_submit(self, action: str) -> bool:
        host = resolve_off_origin(action, self.page_url)
        if host is None:
            return False
        self.emit(InfractionType.NAVIGATION, f"External form submission blocked: {host}")
        return True

    def on_before_unload(self) -> bool:
        self.emit(InfractionType.NAVIGATION, "Attempted to leave page")
        return True

    def install(self, registry: CapabilityRegistry):
        """Replace popup, clipboard-command and screen-capture entry points"""
        registry.install(
            CapabilityRegistry.WINDOW_OPEN,
            GuardedCapability(
                CapabilityRegistry.WINDOW_OPEN,
                InfractionType.NEW_TAB,
                "window.open blocked",
                self.emit,
                fallback=None,
            ),
        )
        registry.install(
            CapabilityRegistry.EXEC_COMMAND,
            GuardedCapability(
                CapabilityRegistry.EXEC_COMMAND,
                InfractionType.COPY_PASTE,
                "execCommand blocked",
                self.emit,
                fallback=False,
            ),
        )
        registry.install(
            CapabilityRegistry.SCREEN_CAPTURE,
            GuardedCapability(
                CapabilityRegistry.SCREEN_CAPTURE,
                InfractionType.SCREEN_SHARE,
                "Screen capture API called",
                self.emit,
                deny=True,
            ),
        )
        logger.debug(f"Guards installed: {registry.installed()}")
