import os
import locale
import logging
from dotenv import load_dotenv
load_dotenv()

SERVER_NAME = "bitbucket-gateway-mcp"
SERVER_VERSION = "1.0.0"

# Base URL for Bitbucket Cloud API v2.0
DEFAULT_API_BASE_URL = "https://api.bitbucket.org/2.0"

# Tenant credential headers
USERNAME_HEADER = "X-Bitbucket-Username"
APP_PASSWORD_HEADER = "X-Bitbucket-App-Password"
ACCESS_TOKEN_HEADER = "X-Bitbucket-Access-Token"
BASE_URL_HEADER = "X-Bitbucket-Base-URL"

# Single-tenant fallback (stdio transport)
USERNAME_ENV = "BITBUCKET_USERNAME"
APP_PASSWORD_ENV = "BITBUCKET_APP_PASSWORD"
ACCESS_TOKEN_ENV = "BITBUCKET_ACCESS_TOKEN"
BASE_URL_ENV = "BITBUCKET_BASE_URL"


def get_env_int(key: str, default: int) -> int:
    """Read an integer setting, falling back to the default when unset or unparseable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def get_env_float(key: str, default: float) -> float:
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


API_BASE_URL = os.environ.get("BITBUCKET_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/")
CHARACTER_LIMIT = get_env_int("CHARACTER_LIMIT", 50000)
DEFAULT_PAGE_SIZE = get_env_int("DEFAULT_PAGE_SIZE", 20)
MAX_PAGE_SIZE = get_env_int("MAX_PAGE_SIZE", 100)
REQUEST_TIMEOUT = get_env_float("REQUEST_TIMEOUT", 30.0)

MCP_TRANSPORT = os.environ.get("MCP_TRANSPORT", "stdio")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = get_env_int("PORT", 8000)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging() -> None:
    # basicConfig writes to stderr, which keeps the stdio transport clean
    logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO), format=LOG_FORMAT)


def configure_locale() -> None:
    """Adopt the environment's LC_TIME so table dates follow the host locale."""
    try:
        locale.setlocale(locale.LC_TIME, "")
    except locale.Error as e:
        logging.getLogger("bitbucket-gateway-mcp").warning(f"Unsupported locale, keeping C date format: {e}")
