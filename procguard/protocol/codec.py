"""
Wire codec for the supervisor's pipe protocol.

Every request is a JSON object tagged by `type`; every response is a JSON
object with `success`, an optional `message` and an optional `data` whose
shape depends on the request. Each request class knows how to decode the
`data` of its own response, so the set of request/response pairs is closed.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from procguard.errors import ProtocolError
from procguard.protocol.models import MonitorItem, ProcessStatus, ServiceStatus, epoch_ms, read_bool, read_int

log = logging.getLogger(__name__)

# A decoded `data` value plus the errors of any entries that had to be skipped.
Decoded = Tuple[Any, List[ProtocolError]]


@dataclass(frozen=True)
class Request:
    type: ClassVar[str] = ""

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type}

    def decode_data(self, data: Any) -> Decoded:
        return None, []


@dataclass(frozen=True)
class ListRequest(Request):
    type: ClassVar[str] = "list"

    def decode_data(self, data: Any) -> Decoded:
        if data is None:
            return [], []
        if not isinstance(data, list):
            raise ProtocolError(f"List data must be an array, got {type(data).__name__}")
        items: List[MonitorItem] = []
        errors: List[ProtocolError] = []
        for index, record in enumerate(data):
            try:
                items.append(MonitorItem.from_dict(record))
            except ProtocolError as e:
                log.warning(f"Skipping malformed monitor item at index {index}: {e}")
                errors.append(ProtocolError(f"Parse item error: {e}"))
        return items, errors


@dataclass(frozen=True)
class AddRequest(Request):
    type: ClassVar[str] = "add"
    config: MonitorItem

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "config": self.config.to_dict()}


@dataclass(frozen=True)
class UpdateRequest(Request):
    type: ClassVar[str] = "update"
    config: MonitorItem

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "config": self.config.to_dict()}


@dataclass(frozen=True)
class RemoveRequest(Request):
    type: ClassVar[str] = "remove"
    id: str

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "id": self.id}


@dataclass(frozen=True)
class StopRequest(Request):
    type: ClassVar[str] = "stop"
    id: str

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "id": self.id}


@dataclass(frozen=True)
class StartRequest(Request):
    type: ClassVar[str] = "start"
    id: str

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "id": self.id}


@dataclass(frozen=True)
class StatusRequest(Request):
    type: ClassVar[str] = "status"

    def decode_data(self, data: Any) -> Decoded:
        if data is None:
            return ServiceStatus(), []
        if not isinstance(data, dict):
            raise ProtocolError(f"Status data must be an object, got {type(data).__name__}")
        entries = data.get("items", [])
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise ProtocolError(f"Status items must be an array, got {type(entries).__name__}")

        items: List[ProcessStatus] = []
        errors: List[ProtocolError] = []
        for index, record in enumerate(entries):
            try:
                items.append(ProcessStatus.from_dict(record))
            except ProtocolError as e:
                log.warning(f"Skipping malformed process status at index {index}: {e}")
                errors.append(ProtocolError(f"Parse process status error: {e}"))

        status = ServiceStatus(
            service_running=read_bool(data, "service_running"),
            total_items=read_int(data, "total_items"),
            items=tuple(items),
        )
        return status, errors


@dataclass(frozen=True)
class HeartbeatRequest(Request):
    type: ClassVar[str] = "heartbeat"
    item_id: str
    timestamp: int = field(default_factory=epoch_ms)

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "item_id": self.item_id, "timestamp": self.timestamp}


@dataclass(frozen=True)
class Response:
    """A decoded supervisor response."""
    success: bool
    message: Optional[str] = None
    value: Any = None
    skipped: Tuple[ProtocolError, ...] = ()

    @property
    def last_skipped(self) -> Optional[ProtocolError]:
        return self.skipped[-1] if self.skipped else None


def encode_request(request: Request) -> bytes:
    """Serializes a request into the compact UTF-8 JSON sent over the pipe."""
    return json.dumps(request.to_payload(), separators=(",", ":")).encode("utf-8")


def decode_response(raw: bytes, request: Request) -> Response:
    """
    Decodes a raw response for the given request.

    :param raw: The bytes read from the pipe.
    :param request: The request this response answers; it decides how `data` is decoded.
    :return: The decoded response.
    :raises ProtocolError: If the payload is not a well-formed response.
    """
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (ValueError, RecursionError) as e:
        raise ProtocolError(f"Parse error: {e}") from e

    if not isinstance(payload, dict):
        raise ProtocolError(f"Response must be an object, got {type(payload).__name__}")

    success = payload.get("success")
    if not isinstance(success, bool):
        raise ProtocolError("Response is missing a boolean 'success' field")

    message = payload.get("message")
    if message is not None and not isinstance(message, str):
        raise ProtocolError("Response 'message' must be a string")

    if not success:
        return Response(success=False, message=message or "Unknown error")

    value, skipped = request.decode_data(payload.get("data"))
    return Response(success=True, message=message, value=value, skipped=tuple(skipped))
