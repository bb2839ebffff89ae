import ntpath
import posixpath
import logging
from pathlib import Path
from typing import Optional

import psutil

from procguard.protocol.models import epoch_ms
from procguard.settings import SELF_MONITOR_DEFAULT_NAME

log = logging.getLogger(__name__)


def get_process_handle(pid: Optional[int] = None) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking."""
    return psutil.Process(pid)


def get_current_exe_path() -> str:
    """
    Returns the full path of the executable running the current process.

    :return str: The executable path, or an empty string if it cannot be resolved.
    """
    try:
        return get_process_handle().exe()
    except psutil.Error as e:
        log.error(f"Could not resolve the current executable path: {e}")
        return ""


def get_current_exe_dir() -> str:
    """Returns the directory that holds the current executable, or an empty string."""
    exe_path = get_current_exe_path()
    if not exe_path:
        return ""
    return _path_module(exe_path).dirname(exe_path)


def derive_display_name(exe_path: str) -> str:
    """
    Base filename without directory and extension, e.g. `C:\\app\\worker.exe` -> `worker`.

    :param exe_path: The executable path to derive a name from.
    :return str: The derived name, or `SelfMonitoredProcess` if nothing is left.
    """
    if not exe_path:
        return SELF_MONITOR_DEFAULT_NAME
    base = _path_module(exe_path).basename(exe_path)
    stem = Path(base).stem if base else ""
    return stem or SELF_MONITOR_DEFAULT_NAME


def new_self_monitor_id() -> str:
    return f"self-{epoch_ms()}"


def _path_module(path: str):
    # Windows paths are parsed as such on every host the client is tested on.
    return ntpath if "\\" in path or (len(path) > 1 and path[1] == ":") else posixpath
