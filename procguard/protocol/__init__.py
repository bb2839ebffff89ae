"""
The protocol package.
Typed monitor-item/status records and the JSON codec for the supervisor pipe.
"""
from .models import MonitorItem, ProcessStatus, ServiceStatus
from .codec import (
    AddRequest, HeartbeatRequest, ListRequest, RemoveRequest, Request, Response,
    StartRequest, StatusRequest, StopRequest, UpdateRequest, decode_response, encode_request,
)

__all__ = [
    "MonitorItem", "ProcessStatus", "ServiceStatus",
    "Request", "Response", "ListRequest", "AddRequest", "UpdateRequest", "RemoveRequest",
    "StopRequest", "StartRequest", "StatusRequest", "HeartbeatRequest",
    "encode_request", "decode_response",
]
