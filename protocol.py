"""Shared constants for the offline signing protocol.

All modules import from here to avoid circular dependencies.
"""

from enum import Enum

# --- Remote coordinator endpoints ---

API_PREFIX = "/api/v1"
DEFAULT_API_URL = "http://localhost:5001"

PATH_UPLOAD = "storage/upload"
PATH_UPLOAD_OFFLINE = "storage/upload/offline"
PATH_UPLOAD_STATUS = "storage/upload/status"
PATH_GET_CONTRACT_BATCH = "storage/upload/getcontractbatch"
PATH_GET_UNSIGNED = "storage/upload/getunsigned"
PATH_SIGN_CONTRACT_BATCH = "storage/upload/signcontractbatch"
PATH_SIGN = "storage/upload/sign"

# Request options
OPT_UPLOAD_MODE = "m"
OPT_HOSTS = "s"
OPT_STORAGE_LENGTH = "storage-length"

REQUEST_TIMEOUT = 30.0  # seconds, per HTTP round trip


# --- Session statuses reported by the coordinator ---

class SessionStatus(str, Enum):
    INIT_SIGN_READY_ESCROW = "initSignReadyEscrow"
    INIT_SIGN_READY_GUARD = "initSignReadyGuard"
    BALANCE_SIGN_READY = "balanceSignReady"
    PAY_CHANNEL_SIGN_READY = "payChannelSignReady"
    PAY_REQUEST_SIGN_READY = "payRequestSignReady"
    GUARD_SIGN_READY = "guardSignReady"
    COMPLETE = "complete"
    ERROR = "error"


# --- Session token ---

SESSION_TOKEN_DELIMITER = ":"
# The coordinator has always received this literal in place of a time value.
SESSION_TIME_PLACEHOLDER = "time.Now().String()"


# --- Identity / configuration ---

ENV_PEER_ID = "BTFS_PEER_ID"
ENV_PUBLIC_KEY = "BTFS_PUBLIC_KEY"
ENV_PRIVATE_KEY = "BTFS_PRIVATE_KEY"
ENV_API_URL = "BTFS_API_URL"
ENV_REPO_PATH = "BTFS_PATH"
DEFAULT_REPO_PATH = "~/.btfs"
CONFIG_FILENAME = "config"

MISSING_KEY_MESSAGE = "private key not available in configuration file or environment variable"


# --- Offline session runner ---

DEFAULT_POLL_INTERVAL = 2.0  # seconds between status polls
DEFAULT_SESSION_TIMEOUT = 600  # seconds before giving up on an upload
