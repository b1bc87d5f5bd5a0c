# core/messages.py
"""
Control messages exchanged between the UI side and the control service.

Wire format (JSON):
    {"type": "enable", "host": "127.0.0.1", "port": 9150}
    {"type": "disable"}
    {"type": "status"}
Responses:
    {"ok": true} / {"ok": false, "err": "..."}
    {"torEnabled": true, "torHost": "127.0.0.1", "torPort": 9150}
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from core.errors import MessageError
from utils.port_utils import DEFAULT_HOST, DEFAULT_PORT


@dataclass(frozen=True)
class EnableRequest:
    host: Any = DEFAULT_HOST
    port: Any = DEFAULT_PORT

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "enable", "host": self.host, "port": self.port}


@dataclass(frozen=True)
class DisableRequest:
    def to_dict(self) -> Dict[str, Any]:
        return {"type": "disable"}


@dataclass(frozen=True)
class StatusRequest:
    def to_dict(self) -> Dict[str, Any]:
        return {"type": "status"}


ControlRequest = Union[EnableRequest, DisableRequest, StatusRequest]


@dataclass(frozen=True)
class ToggleResult:
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"ok": self.ok}
        if self.error is not None:
            data["err"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToggleResult":
        return cls(ok=bool(data.get("ok")), error=data.get("err"))


@dataclass(frozen=True)
class StatusResult:
    tor_enabled: bool = False
    tor_host: str = DEFAULT_HOST
    tor_port: int = DEFAULT_PORT

    def to_dict(self) -> Dict[str, Any]:
        return {"torEnabled": self.tor_enabled, "torHost": self.tor_host, "torPort": self.tor_port}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusResult":
        return cls(
            tor_enabled=bool(data.get("torEnabled", False)),
            tor_host=data.get("torHost") or DEFAULT_HOST,
            tor_port=data.get("torPort") or DEFAULT_PORT,
        )


def parse_request(data: Dict[str, Any]) -> ControlRequest:
    """Builds a request object from its wire form"""
    if not isinstance(data, dict):
        raise MessageError(f"Control message must be an object, got {type(data).__name__}")

    message_type = data.get("type")
    if message_type == "enable":
        return EnableRequest(host=data.get("host", DEFAULT_HOST), port=data.get("port", DEFAULT_PORT))
    if message_type == "disable":
        return DisableRequest()
    if message_type == "status":
        return StatusRequest()
    raise MessageError(f"Unknown control message type: {message_type!r}")


def parse_response(request: ControlRequest, data: Dict[str, Any]) -> Union[ToggleResult, StatusResult]:
    if not isinstance(data, dict):
        raise MessageError("Control response must be an object")
    if isinstance(request, StatusRequest):
        return StatusResult.from_dict(data)
    return ToggleResult.from_dict(data)
