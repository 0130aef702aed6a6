"""
This module contains the default configuration settings for the DPug host.
It defines paths, server settings, supervisor timings and the executable
names used to locate the DPug server.
Workspace overrides are layered on top of these values by `local.config`.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
LOGS_DIR = BASE_DIR / "logs"
LOG_FILE_PATH = LOGS_DIR / "dpug_host.log"

# The workspace the editor has open. Defaults to the current directory.
WORKSPACE_DIR = pathlib.Path(os.getenv("DPUG_WORKSPACE", os.getcwd()))
WORKSPACE_SETTINGS_PATH = pathlib.Path(".dpug") / "settings.json"

#* --- Server Settings ---
SERVER_HOST = os.getenv("DPUG_SERVER_HOST", "localhost")
SERVER_PORT = int(os.getenv("DPUG_SERVER_PORT", "8080"))
SERVER_AUTO_START = _env_flag("DPUG_SERVER_AUTO_START", "True")
SERVER_AUTO_STOP = _env_flag("DPUG_SERVER_AUTO_STOP", "True")
FORMAT_ON_SAVE = _env_flag("DPUG_FORMAT_ON_SAVE", "True")

# Host the spawned server binds to, independent of the probed host.
SERVER_BIND_HOST = "localhost"

#* --- Supervisor Settings ---
READY_TIMEOUT = 30             # seconds to wait for /health after launch
READY_POLL_INTERVAL = 1        # seconds between readiness probes
HEALTH_PROBE_TIMEOUT = 2       # seconds per health probe
GRACEFUL_SHUTDOWN_TIMEOUT = 2  # seconds before SIGKILL
REQUEST_TIMEOUT = 10           # seconds for conversion requests

#* --- Executable Discovery ---
CLI_COMMAND = "dpug"
DART_EXECUTABLE = os.getenv("DPUG_DART_EXECUTABLE", "dart")
CLI_BIN_DIR = pathlib.Path("dpug_cli") / "bin"
CLI_SCRIPT_NAME = "dpug.dart"
CLI_BINARY_NAME = "dpug"

#* --- Editor Settings (dotted keys as the editor names them) ---
# Maps each workspace settings key to the module default above.
SETTING_DEFAULTS = {
    "server.host": SERVER_HOST,
    "server.port": SERVER_PORT,
    "server.autoStart": SERVER_AUTO_START,
    "server.autoStop": SERVER_AUTO_STOP,
    "formatting.formatOnSave": FORMAT_ON_SAVE,
}

#* --- MODIFIABLE SETTINGS (Changeable at runtime via 'config set') ---
MODIFIABLE_SETTINGS = set(SETTING_DEFAULTS)

#* --- Process Titles ---
CONSOLE_PROCESS_TITLE = "DPug - Console"
