import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base directory of the project
BASE_DIR = Path(__file__).resolve().parent

VERSION = "0.3.0"

# Database location: a file path for SQLite or a postgres:// URI.
# Empty means the per-user default from default_database_path().
DATABASE_URL = os.getenv("BH_SERVER_DB", "")

# Address the HTTP server listens on
LISTEN_ADDR = os.getenv("BH_SERVER_URL", "http://0.0.0.0:8080")

# HTTP/application log destination. "" logs to stderr, /dev/null discards.
LOG_FILE = os.getenv("BH_SERVER_LOG", "")

# Bearer tokens are long-lived session credentials
TOKEN_LIFETIME = timedelta(hours=int(os.getenv("BH_TOKEN_HOURS", "10000")))
JWT_ALGORITHM = "HS256"
JWT_REALM = "bashhub-server zone"

# Connection pools: SQLite serialises on a single connection
EMBEDDED_POOL_SIZE = 1
REMOTE_POOL_SIZE = 50
DB_TIMEOUT_SECONDS = float(os.getenv("BH_DB_TIMEOUT", "30"))

# Password hashing configuration (pbkdf2_sha256)
PASSWORD_HASH_ROUNDS = int(os.getenv("BH_PASSWORD_ROUNDS", "29000"))

SEARCH_DEFAULT_LIMIT = 100

# Ranges of the Integer and BigInteger columns
INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1

# Only successful or interrupted (Ctrl-C) commands are recorded
ACCEPTED_EXIT_STATUSES = (0, 130)


def default_database_path() -> Path:
    """Return <user config dir>/bashhub-server/data.db, creating the directory."""
    config_home = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    app_dir = Path(config_home) / "bashhub-server"
    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir / "data.db"
