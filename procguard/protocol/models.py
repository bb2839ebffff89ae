import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from procguard.errors import ProtocolError
from procguard.settings import DEFAULT_HEARTBEAT_TIMEOUT_MS


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


#* --- Field readers ---
# A missing key falls back to the default; a present key of the wrong type is an error.
def read_str(record: Mapping[str, Any], key: str, default: str = "", nullable: bool = False) -> str:
    value = record.get(key, default)
    if value is None and nullable:
        return default
    if not isinstance(value, str):
        raise ProtocolError(f"Field '{key}' must be a string, got {type(value).__name__}")
    return value


def read_bool(record: Mapping[str, Any], key: str, default: bool = False) -> bool:
    value = record.get(key, default)
    if not isinstance(value, bool):
        raise ProtocolError(f"Field '{key}' must be a boolean, got {type(value).__name__}")
    return value


def read_int(record: Mapping[str, Any], key: str, default: int = 0, nullable: bool = False) -> int:
    value = record.get(key, default)
    if value is None and nullable:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError(f"Field '{key}' must be a number, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ProtocolError(f"Field '{key}' must be a finite number, got {value}")
    return int(value)


def _require_mapping(record: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(record, Mapping):
        raise ProtocolError(f"{what} must be an object, got {type(record).__name__}")
    return record


@dataclass
class MonitorItem:
    """
    A registration describing one executable the supervisor should run and watch.
    Referenced by `id` once it has been sent to the supervisor.
    """
    id: str
    exe_path: str
    name: str
    args: str = ""
    minimize: bool = False
    no_window: bool = False
    enabled: bool = True
    heartbeat_timeout_ms: int = DEFAULT_HEARTBEAT_TIMEOUT_MS

    @classmethod
    def create(cls, exe_path: str, name: str, id: Optional[str] = None, **kwargs: Any) -> "MonitorItem":
        """Builds an item, generating an `item-<epoch ms>` id when none is given."""
        return cls(id=id or f"item-{epoch_ms()}", exe_path=exe_path, name=name, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "exe_path": self.exe_path,
            "name": self.name,
            "minimize": self.minimize,
            "no_window": self.no_window,
            "enabled": self.enabled,
            "heartbeat_timeout_ms": int(self.heartbeat_timeout_ms),
        }
        if self.args:
            record["args"] = self.args
        return record

    @classmethod
    def from_dict(cls, record: Any) -> "MonitorItem":
        record = _require_mapping(record, "Monitor item")
        return cls(
            id=read_str(record, "id"),
            exe_path=read_str(record, "exe_path"),
            name=read_str(record, "name"),
            args=read_str(record, "args", nullable=True),
            minimize=read_bool(record, "minimize"),
            no_window=read_bool(record, "no_window"),
            enabled=read_bool(record, "enabled"),
            heartbeat_timeout_ms=read_int(record, "heartbeat_timeout_ms", DEFAULT_HEARTBEAT_TIMEOUT_MS),
        )


@dataclass(frozen=True)
class ProcessStatus:
    """Supervisor-reported snapshot for one monitor item."""
    id: str
    name: str = ""
    exe_path: str = ""
    enabled: bool = False
    process_id: int = 0
    last_heartbeat_ms: int = 0
    heartbeat_timeout_ms: int = DEFAULT_HEARTBEAT_TIMEOUT_MS
    restart_count: int = 0
    is_alive: bool = False
    is_heartbeat_ok: bool = False

    @classmethod
    def from_dict(cls, record: Any) -> "ProcessStatus":
        record = _require_mapping(record, "Process status")
        return cls(
            id=read_str(record, "id"),
            name=read_str(record, "name"),
            exe_path=read_str(record, "exe_path"),
            enabled=read_bool(record, "enabled"),
            process_id=read_int(record, "process_id", nullable=True),
            last_heartbeat_ms=read_int(record, "last_heartbeat_ms"),
            heartbeat_timeout_ms=read_int(record, "heartbeat_timeout_ms", DEFAULT_HEARTBEAT_TIMEOUT_MS),
            restart_count=read_int(record, "restart_count"),
            is_alive=read_bool(record, "is_alive"),
            is_heartbeat_ok=read_bool(record, "is_heartbeat_ok"),
        )


@dataclass(frozen=True)
class ServiceStatus:
    """Aggregate status reported by the supervisor."""
    service_running: bool = False
    total_items: int = 0
    items: Tuple[ProcessStatus, ...] = field(default_factory=tuple)
