from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

RELAY_TYPES = ("offer", "answer", "ice-candidate")


class JoinMessage(BaseModel):
    type: Literal["join"]
    sessionCode: str
    isInitiator: bool = False


class RelayMessage(BaseModel):
    # offer/answer payloads carry sdp, candidates carry candidate/sdpMid/...
    model_config = ConfigDict(extra="allow")

    type: Literal["offer", "answer", "ice-candidate"]
    sessionCode: Optional[str] = None


class ReadyMessage(BaseModel):
    type: Literal["ready"] = "ready"
