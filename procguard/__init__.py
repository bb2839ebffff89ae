"""
ProcessGuard client.

Registers executables (or the current process) with the ProcessGuard
supervisor service, reports heartbeats for them and manages the service
itself.
"""
from procguard.client import Client
from procguard.errors import (
    ApplicationError, ChannelConnectionError, ChannelUnavailableError, ProcessGuardError, ProtocolError, Result,
    ServiceErrorKind, ServiceManagementError,
)
from procguard.protocol import MonitorItem, ProcessStatus, ServiceStatus

__version__ = "1.0.0"

__all__ = [
    "Client", "MonitorItem", "ProcessStatus", "ServiceStatus", "Result",
    "ProcessGuardError", "ChannelConnectionError", "ChannelUnavailableError", "ProtocolError",
    "ApplicationError", "ServiceManagementError", "ServiceErrorKind",
]
