"""
The heartbeat package.
Per-item background reporters that prove liveness to the supervisor.
"""
from .supervisor import HeartbeatSupervisor

__all__ = ["HeartbeatSupervisor"]
