"""
This module contains the default configuration settings for embeddb.
It defines paths, the server version and port, supervision timeouts and the
readiness contract with the wrapped server binary.
Every value can be overridden through an `EMBEDDB_*` environment variable or a `.env` file.
"""

import os
import pathlib
import tempfile
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
PACKAGE_DIR = pathlib.Path(__file__).resolve().parent
TEMP_ROOT = pathlib.Path(tempfile.gettempdir())
DEFAULT_HOME = TEMP_ROOT / "embeddb"

BASE_DIR = pathlib.Path(os.getenv("EMBEDDB_BASE_DIR", str(DEFAULT_HOME / "base")))
DATA_DIR = pathlib.Path(os.getenv("EMBEDDB_DATA_DIR", str(DEFAULT_HOME / "data")))
DISTRIBUTIONS_DIR = pathlib.Path(os.getenv("EMBEDDB_DISTRIBUTIONS_DIR", str(PACKAGE_DIR / "distributions")))

#* --- Server Settings ---
PORT = int(os.getenv("EMBEDDB_PORT", "3306"))
VERSION = os.getenv("EMBEDDB_VERSION", "mariadb-10.11.6")

# Optional remote source for a distribution archive, formatted with {version} and {platform}.
DOWNLOAD_URL_TEMPLATE = os.getenv("EMBEDDB_DOWNLOAD_URL", "")
DOWNLOAD_TIMEOUT = 30 # seconds

#* --- Supervision Settings ---
READY_TIMEOUT = float(os.getenv("EMBEDDB_READY_TIMEOUT", "30"))                  # seconds
SHUTDOWN_GRACE_PERIOD = float(os.getenv("EMBEDDB_SHUTDOWN_GRACE_PERIOD", "10"))  # seconds before force-killing
OUTPUT_HISTORY_LINES = 500

# Literal line fragment the server prints once it accepts connections.
READY_SIGNAL = "ready for connections"

#* --- Distribution Layout ---
INSTALL_EXECUTABLE = pathlib.Path("bin") / "mysql_install_db"
SERVER_EXECUTABLE = pathlib.Path("bin") / "mysqld"
# Binaries that lose their execute bit when unpacked from a zip archive.
POSIX_EXECUTABLES = (
    pathlib.Path("bin") / "my_print_defaults",
    INSTALL_EXECUTABLE,
    SERVER_EXECUTABLE,
)

#* --- Logging ---
LOG_FILE = os.getenv("EMBEDDB_LOG_FILE", "")
PROCESS_TITLE = "EmbedDB - Server"
