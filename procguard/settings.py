"""
This module contains the configuration settings for the ProcessGuard client.
It defines the supervisor endpoint names, timeouts, polling bounds and logging
options. It is used throughout the package to ensure consistent settings.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
OVERRIDES_JSON_PATH = pathlib.Path(os.getenv("PROCGUARD_OVERRIDES", str(BASE_DIR / "procguard_overrides.json")))

#* --- Supervisor Service Identity ---
SERVICE_NAME = os.getenv("PROCGUARD_SERVICE_NAME", "ProcessGuardService")
SERVICE_DISPLAY_NAME = "Process Guard Service"
PIPE_NAME = os.getenv("PROCGUARD_PIPE_NAME", "ProcessGuardService")
PIPE_BUFFER_SIZE = 65536  # bytes, maximum size of a single response

#* --- Channel Settings ---
CONNECT_TIMEOUT = float(os.getenv("PROCGUARD_CONNECT_TIMEOUT", "5.0"))  # seconds
PIPE_BUSY_RETRY_DELAY = 0.05  # seconds between attempts when no WaitNamedPipe is available

#* --- Service Lifecycle Settings ---
SERVICE_POLL_ATTEMPTS = 60
SERVICE_POLL_INTERVAL = 0.5    # seconds, 60 * 0.5 = 30s bound
UNINSTALL_STOP_GRACE = 1.0     # seconds to wait after a stop request before deleting

#* --- Monitor Item Defaults ---
DEFAULT_HEARTBEAT_TIMEOUT_MS = 1000
SELF_MONITOR_HEARTBEAT_TIMEOUT_MS = 24 * 3600 * 1000  # 24 hours
SELF_MONITOR_DEFAULT_NAME = "SelfMonitoredProcess"
HEARTBEAT_INTERVAL = float(os.getenv("PROCGUARD_HEARTBEAT_INTERVAL", "0.5"))  # seconds

#* --- Logging ---
LOG_LEVEL = os.getenv("PROCGUARD_LOG_LEVEL", "INFO").upper()
LOG_FILE_PATH = os.getenv("PROCGUARD_LOG_FILE", "")
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3

#* --- Application variables ---
VERBOSE_LOGGING = False

#* --- MODIFIABLE SETTINGS (Changeable through the overrides file) ---
MODIFIABLE_SETTINGS = {
    # Channel
    "CONNECT_TIMEOUT",
    # Service lifecycle
    "SERVICE_POLL_ATTEMPTS", "SERVICE_POLL_INTERVAL", "UNINSTALL_STOP_GRACE",
    # Heartbeats
    "HEARTBEAT_INTERVAL", "DEFAULT_HEARTBEAT_TIMEOUT_MS",
    # Logging
    "LOG_LEVEL", "LOG_FILE_PATH",
}
