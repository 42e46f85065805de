"""Peer identity and key material, passed explicitly into every signing call.

Lookup order for each value: environment variable > key file > the
Identity section of the node's JSON config (~/.btfs/config).
"""

import json
import logging
import os
from dataclasses import dataclass

from crypto import PrivateKey, PublicKey, load_key_file, private_key_from_string, public_key_from_string
from errors import ConfigError, MissingKeyError
from protocol import (
    CONFIG_FILENAME,
    DEFAULT_API_URL,
    DEFAULT_REPO_PATH,
    ENV_API_URL,
    ENV_PEER_ID,
    ENV_PRIVATE_KEY,
    ENV_PUBLIC_KEY,
    ENV_REPO_PATH,
    MISSING_KEY_MESSAGE,
)

logger = logging.getLogger(__name__)

ENV_PRIVATE_KEY_FILE = "BTFS_PRIVATE_KEY_FILE"


@dataclass(frozen=True)
class Identity:
    """Read-only key material for one buyer peer.

    private_key / public_key are the base64 libp2p envelopes exactly as
    configured. private_key may be empty: signing then fails fast.
    """

    peer_id: str
    public_key: str = ""
    private_key: str = ""

    @property
    def has_private_key(self) -> bool:
        return bool(self.private_key)

    def require_private_key(self) -> PrivateKey:
        """Parsed private key, or MissingKeyError when none is configured."""
        if not self.private_key:
            raise MissingKeyError(MISSING_KEY_MESSAGE)
        return private_key_from_string(self.private_key)

    def public_key_obj(self) -> PublicKey:
        """Configured public key, falling back to the one derived from the
        private key."""
        if self.public_key:
            return public_key_from_string(self.public_key)
        return self.require_private_key().public_key()

    def __repr__(self):
        # never print key material
        return f"Identity(peer_id={self.peer_id!r}, has_private_key={self.has_private_key})"


def repo_path() -> str:
    return os.path.expanduser(os.environ.get(ENV_REPO_PATH) or DEFAULT_REPO_PATH)


def _read_config_identity(path: str) -> dict:
    """Return the Identity section of a node config, {} if the file is absent."""
    try:
        with open(path) as f:
            cfg = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        raise ConfigError(f"Error in {path}: {e}") from e
    section = cfg.get("Identity") if isinstance(cfg, dict) else None
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"Error in {path}: Identity must be an object")
    return section


def load_identity(config_path: str | None = None) -> Identity:
    """Load peer id and key material from env vars, key file and config."""
    path = config_path or os.path.join(repo_path(), CONFIG_FILENAME)
    section = _read_config_identity(path)

    private_key = os.environ.get(ENV_PRIVATE_KEY, "")
    if not private_key:
        keyfile = os.environ.get(ENV_PRIVATE_KEY_FILE, "")
        if keyfile:
            try:
                private_key = load_key_file(os.path.expanduser(keyfile))
            except OSError as e:
                raise ConfigError(f"cannot read key file {keyfile}: {e}") from e
    if not private_key:
        private_key = section.get("PrivKey", "")

    identity = Identity(
        peer_id=os.environ.get(ENV_PEER_ID) or section.get("PeerID", ""),
        public_key=os.environ.get(ENV_PUBLIC_KEY) or section.get("PubKey", ""),
        private_key=private_key,
    )
    if not identity.has_private_key:
        logger.warning("no private key configured; offline signing will be unavailable")
    return identity


def api_url() -> str:
    return os.environ.get(ENV_API_URL) or DEFAULT_API_URL
