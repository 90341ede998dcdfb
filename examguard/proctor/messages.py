"""
Authority message protocol - request/response models

Field names are camelCase on the wire (by_alias) and snake_case in Python.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProtocolModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============== Requests ==============

class RecordInfractionRequest(ProtocolModel):
    """Record one infraction against an identity"""
    identity: Optional[str] = Field(None, description="Monitored identity")
    infraction_type: str = Field(..., alias="infractionType")
    details: str = ""
    page: str = Field("", description="Origin page URL")


class IsBlockedRequest(ProtocolModel):
    identity: str


class UnblockRequest(ProtocolModel):
    identity: str


# ============== Responses ==============

class RecordInfractionResponse(ProtocolModel):
    """
    One of:
        {ok: true, infractions, warnings, threshold, message}
        {ok: true, blocked: true, blockReason, infractions, warnings}
        {ok: false, blocked: true, reason: "already-blocked"}
        {ok: false, reason: "no-id"}
    """
    ok: bool
    infractions: Optional[int] = None
    warnings: Optional[int] = None
    threshold: Optional[int] = None
    message: Optional[str] = None
    blocked: Optional[bool] = None
    block_reason: Optional[str] = Field(None, alias="blockReason")
    reason: Optional[str] = None
    info: Optional[Dict[str, Any]] = None

    @property
    def is_blocked(self) -> bool:
        return bool(self.blocked)


class IsBlockedResponse(ProtocolModel):
    blocked: bool
    info: Optional[Dict[str, Any]] = None

    def to_wire(self) -> Dict[str, Any]:
        # info is always present, null when Active
        return self.model_dump(by_alias=True)


class StatusResponse(ProtocolModel):
    infractions: Dict[str, Any] = Field(default_factory=dict)
    blocked_ids: Dict[str, Any] = Field(default_factory=dict, alias="blockedIds")


class AckResponse(ProtocolModel):
    ok: bool


class MessageEnvelope(ProtocolModel):
    """Generic {"type": ..., ...} message accepted by Authority.handle"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
