"""
Infraction model - types, severities and the records kept per identity

Serialized layout (camelCase) matches what the ledger persists:
    infractions: identity -> {count, warnings, events}
    blockedIds:  identity -> {blockedAt, reason, totalInfractions, lastEvents}
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class InfractionType(str, Enum):
    """Closed set of infraction kinds a detector can report"""
    TAB_SWITCH = "TAB_SWITCH"
    WINDOW_BLUR = "WINDOW_BLUR"
    CAMERA_OFF = "CAMERA_OFF"
    NO_FACE = "NO_FACE"
    MULTIPLE_FACES = "MULTIPLE_FACES"
    EYE_MOVEMENT = "EYE_MOVEMENT"
    AUDIO_DETECTED = "AUDIO_DETECTED"
    COPY_PASTE = "COPY_PASTE"
    NAVIGATION = "NAVIGATION"
    NEW_TAB = "NEW_TAB"
    EXTERNAL_APP = "EXTERNAL_APP"
    SCREEN_SHARE = "SCREEN_SHARE"
    MULTIPLE_MONITORS = "MULTIPLE_MONITORS"
    REMOTE_DESKTOP = "REMOTE_DESKTOP"


@dataclass(frozen=True)
class InfractionInfo:
    """Severity (1-5) and default message for an infraction type"""
    severity: int
    message: str


INFRACTION_TYPES: Dict[InfractionType, InfractionInfo] = {
    InfractionType.TAB_SWITCH: InfractionInfo(3, "Tab switching detected"),
    InfractionType.WINDOW_BLUR: InfractionInfo(2, "Window lost focus"),
    InfractionType.CAMERA_OFF: InfractionInfo(5, "Camera turned off"),
    InfractionType.NO_FACE: InfractionInfo(4, "Face not detected in camera"),
    InfractionType.MULTIPLE_FACES: InfractionInfo(5, "Multiple faces detected"),
    InfractionType.EYE_MOVEMENT: InfractionInfo(3, "Suspicious eye movements detected"),
    InfractionType.AUDIO_DETECTED: InfractionInfo(3, "Background audio/conversation detected"),
    InfractionType.COPY_PASTE: InfractionInfo(4, "Copy/paste attempt blocked"),
    InfractionType.NAVIGATION: InfractionInfo(5, "Navigation attempt blocked"),
    InfractionType.NEW_TAB: InfractionInfo(5, "New tab/window attempt blocked"),
    InfractionType.EXTERNAL_APP: InfractionInfo(5, "Unauthorized application detected"),
    InfractionType.SCREEN_SHARE: InfractionInfo(5, "Screen sharing software detected"),
    InfractionType.MULTIPLE_MONITORS: InfractionInfo(5, "Multiple monitors detected"),
    InfractionType.REMOTE_DESKTOP: InfractionInfo(5, "Remote desktop access detected"),
}

UNKNOWN_INFRACTION = InfractionInfo(1, "Unknown infraction")


def describe(infraction_type: str) -> InfractionInfo:
    """Look up severity and message; unknown types get severity 1"""
    try:
        return INFRACTION_TYPES[InfractionType(infraction_type)]
    except ValueError:
        return UNKNOWN_INFRACTION


def type_name(infraction_type: Any) -> str:
    """Plain string name for an InfractionType or a raw string"""
    if isinstance(infraction_type, InfractionType):
        return infraction_type.value
    return str(infraction_type)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class InfractionEvent:
    """One qualified, recorded rule violation"""
    type: str
    severity: int
    message: str
    details: str
    timestamp: str
    source_page: str = ""

    @classmethod
    def create(
        cls,
        infraction_type: Any,
        details: str = "",
        page: str = "",
        when: Optional[datetime] = None
    ) -> "InfractionEvent":
        name = type_name(infraction_type)
        info = describe(name)
        return cls(
            type=name,
            severity=info.severity,
            message=info.message,
            details=details or "",
            timestamp=isoformat(when or utc_now()),
            source_page=page or ""
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
            "sourcePage": self.source_page,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InfractionEvent":
        return cls(
            type=data["type"],
            severity=int(data.get("severity", 1)),
            message=data.get("message", ""),
            details=data.get("details", ""),
            timestamp=data.get("timestamp", ""),
            source_page=data.get("sourcePage", ""),
        )


@dataclass
class IdentityRecord:
    """Running infraction totals and history for one identity"""
    count: int = 0
    warnings: int = 0
    events: List[InfractionEvent] = field(default_factory=list)

    def append(self, event: InfractionEvent, history_limit: Optional[int] = None):
        self.events.append(event)
        if history_limit is not None and len(self.events) > history_limit:
            del self.events[:len(self.events) - history_limit]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "warnings": self.warnings,
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdentityRecord":
        return cls(
            count=int(data.get("count", 0)),
            warnings=int(data.get("warnings", 0)),
            events=[InfractionEvent.from_dict(e) for e in data.get("events", [])],
        )


@dataclass(frozen=True)
class BlockRecord:
    """Snapshot taken at the moment an identity was blocked"""
    blocked_at: str
    reason: str
    total_infractions: int
    last_events: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockedAt": self.blocked_at,
            "reason": self.reason,
            "totalInfractions": self.total_infractions,
            "lastEvents": [e.to_dict() for e in self.last_events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlockRecord":
        return cls(
            blocked_at=data.get("blockedAt", ""),
            reason=data.get("reason", ""),
            total_infractions=int(data.get("totalInfractions", 0)),
            last_events=tuple(
                InfractionEvent.from_dict(e) for e in data.get("lastEvents", [])
            ),
        )
