"""
examguard Proctoring Module

Enforces exam integrity while a candidate is being monitored by detecting:
- Face absence and multiple faces
- Sustained background audio
- Rapid pointer movements
- Remote-access and screen-sharing tools
- Additional displays
- Clipboard, shortcut, navigation and tab-switch attempts

Every detection is recorded by the Authority, which warns until the
threshold is crossed and then blocks the identity.
"""

from .api import router
from .authority import Authority
from .ledger import InfractionLedger
from .session import SessionController, SessionState

__all__ = ["router", "Authority", "InfractionLedger", "SessionController", "SessionState"]
