"""Key material and detached signatures for offline signing.

Provides:
- libp2p key envelope parsing (base64 of the protobuf-encoded key)
- Ed25519 and Secp256k1 signing / verification
- Detached signatures over a message's canonical serialization
- The two address encodings the escrow service expects

Dependencies: base64, os, cryptography, protobuf
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from errors import KeyMaterialError, SchemaError, SignError
from messages import (
    KEY_TYPE_ED25519,
    KEY_TYPE_SECP256K1,
    Libp2pPrivateKey,
    Libp2pPublicKey,
    canonical_bytes,
    parse_strict,
)

KEY_TYPE_NAMES = {KEY_TYPE_ED25519: "Ed25519", KEY_TYPE_SECP256K1: "Secp256k1"}

# Order of the secp256k1 group, for low-S normalization
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def _ed25519_pub_raw(key: Ed25519PublicKey) -> bytes:
    return key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)


# ---------------------------------------------------------------------------
# Public keys
# ---------------------------------------------------------------------------

class PublicKey:
    """A verifying key plus its libp2p key type."""

    def __init__(self, key_type: int, key):
        self.key_type = key_type
        self._key = key

    def raw(self) -> bytes:
        """Native encoding: 32 bytes (Ed25519) or 33-byte compressed point."""
        if self.key_type == KEY_TYPE_ED25519:
            return _ed25519_pub_raw(self._key)
        return self._key.public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
        )

    def raw_full(self) -> bytes:
        """Full encoding: 32 bytes (Ed25519) or 65-byte uncompressed point."""
        if self.key_type == KEY_TYPE_ED25519:
            return _ed25519_pub_raw(self._key)
        return self._key.public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
        )

    def marshal(self) -> bytes:
        """libp2p protobuf envelope of this key."""
        return canonical_bytes(Libp2pPublicKey(Type=self.key_type, Data=self.raw()))

    def to_string(self) -> str:
        return base64.b64encode(self.marshal()).decode("ascii")

    def verify(self, data: bytes, signature: bytes) -> bool:
        try:
            if self.key_type == KEY_TYPE_ED25519:
                self._key.verify(signature, data)
            else:
                self._key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
            return True
        except (InvalidSignature, ValueError):
            return False

    def __eq__(self, other):
        return (
            isinstance(other, PublicKey)
            and self.key_type == other.key_type
            and self.raw() == other.raw()
        )

    def __hash__(self):
        return hash((self.key_type, self.raw()))

    def __repr__(self):
        return f"PublicKey({KEY_TYPE_NAMES[self.key_type]}, {self.raw().hex()[:16]}...)"


# ---------------------------------------------------------------------------
# Private keys
# ---------------------------------------------------------------------------

class PrivateKey:
    """A signing key plus its libp2p key type."""

    def __init__(self, key_type: int, key):
        self.key_type = key_type
        self._key = key

    def public_key(self) -> PublicKey:
        return PublicKey(self.key_type, self._key.public_key())

    def raw(self) -> bytes:
        """libp2p raw form: seed||pubkey (Ed25519, 64 bytes) or 32-byte scalar."""
        if self.key_type == KEY_TYPE_ED25519:
            seed = self._key.private_bytes(
                serialization.Encoding.Raw,
                serialization.PrivateFormat.Raw,
                serialization.NoEncryption(),
            )
            return seed + _ed25519_pub_raw(self._key.public_key())
        return self._key.private_numbers().private_value.to_bytes(32, "big")

    def marshal(self) -> bytes:
        return canonical_bytes(Libp2pPrivateKey(Type=self.key_type, Data=self.raw()))

    def to_string(self) -> str:
        return base64.b64encode(self.marshal()).decode("ascii")

    def sign(self, data: bytes) -> bytes:
        """Detached signature over *data*.

        Secp256k1 signatures are DER encoded ECDSA over SHA-256 with S
        normalized to the lower half of the group order.
        """
        try:
            if self.key_type == KEY_TYPE_ED25519:
                return self._key.sign(data)
            der = self._key.sign(data, ec.ECDSA(hashes.SHA256()))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SignError(f"signing failed: {e}") from e
        r, s = decode_dss_signature(der)
        if s > SECP256K1_N // 2:
            s = SECP256K1_N - s
        return encode_dss_signature(r, s)

    def __repr__(self):
        return f"PrivateKey({KEY_TYPE_NAMES[self.key_type]})"


# ---------------------------------------------------------------------------
# Parsing -- libp2p envelope <-> key objects
# ---------------------------------------------------------------------------

def unmarshal_public_key(data: bytes) -> PublicKey:
    """Parse a protobuf-encoded libp2p public key."""
    try:
        envelope = parse_strict(Libp2pPublicKey, data)
    except SchemaError as e:
        raise KeyMaterialError(f"invalid public key envelope: {e}") from e
    raw = envelope.Data
    try:
        if envelope.Type == KEY_TYPE_ED25519:
            return PublicKey(KEY_TYPE_ED25519, Ed25519PublicKey.from_public_bytes(raw))
        if envelope.Type == KEY_TYPE_SECP256K1:
            key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), raw)
            return PublicKey(KEY_TYPE_SECP256K1, key)
    except ValueError as e:
        raise KeyMaterialError(f"invalid public key bytes: {e}") from e
    raise KeyMaterialError(f"unsupported key type {envelope.Type}")


def unmarshal_private_key(data: bytes) -> PrivateKey:
    """Parse a protobuf-encoded libp2p private key."""
    try:
        envelope = parse_strict(Libp2pPrivateKey, data)
    except SchemaError as e:
        raise KeyMaterialError(f"invalid private key envelope: {e}") from e
    raw = envelope.Data
    if envelope.Type == KEY_TYPE_ED25519:
        # seed||pub, older keys repeat the public half (96 bytes)
        if len(raw) not in (64, 96):
            raise KeyMaterialError(f"Expected 64-byte Ed25519 key, got {len(raw)} bytes")
        key = Ed25519PrivateKey.from_private_bytes(raw[:32])
        if _ed25519_pub_raw(key.public_key()) != raw[32:64]:
            raise KeyMaterialError("Ed25519 key: public half does not match seed")
        return PrivateKey(KEY_TYPE_ED25519, key)
    if envelope.Type == KEY_TYPE_SECP256K1:
        if len(raw) != 32:
            raise KeyMaterialError(f"Expected 32-byte Secp256k1 key, got {len(raw)} bytes")
        try:
            key = ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256K1())
        except ValueError as e:
            raise KeyMaterialError(f"invalid Secp256k1 scalar: {e}") from e
        return PrivateKey(KEY_TYPE_SECP256K1, key)
    raise KeyMaterialError(f"unsupported key type {envelope.Type}")


def _b64_key(text: str, what: str) -> bytes:
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyMaterialError(f"{what} is not valid base64: {e}") from e


def private_key_from_string(text: str) -> PrivateKey:
    """Parse configured private key material (base64 libp2p envelope)."""
    if not text:
        raise KeyMaterialError("empty private key")
    return unmarshal_private_key(_b64_key(text, "private key"))


def public_key_from_string(text: str) -> PublicKey:
    """Parse configured public key material (base64 libp2p envelope)."""
    if not text:
        raise KeyMaterialError("empty public key")
    return unmarshal_public_key(_b64_key(text, "public key"))


def generate_keypair(key_type: int = KEY_TYPE_ED25519) -> tuple[str, str]:
    """Generate a new keypair. Returns (privkey_string, pubkey_string),
    both base64 libp2p envelopes as found in configuration."""
    if key_type == KEY_TYPE_ED25519:
        priv = PrivateKey(KEY_TYPE_ED25519, Ed25519PrivateKey.generate())
    elif key_type == KEY_TYPE_SECP256K1:
        priv = PrivateKey(KEY_TYPE_SECP256K1, ec.generate_private_key(ec.SECP256K1()))
    else:
        raise KeyMaterialError(f"unsupported key type {key_type}")
    return priv.to_string(), priv.public_key().to_string()


def load_key_file(path: str) -> str:
    """Load a base64 key string from file."""
    with open(path) as f:
        return f.read().strip()


def save_key_file(path: str, key: str) -> None:
    """Save a base64 key string to file (mode 0600)."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        os.write(fd, key.encode("ascii"))
    finally:
        os.close(fd)


# ---------------------------------------------------------------------------
# Detached message signatures
# ---------------------------------------------------------------------------

def sign_message(private_key: PrivateKey, message) -> bytes:
    """Sign the canonical serialization of a protocol message."""
    return private_key.sign(canonical_bytes(message))


def verify_message(public_key: PublicKey, message, signature: bytes) -> bool:
    """Check a detached signature against a message's canonical serialization."""
    return public_key.verify(canonical_bytes(message), signature)


# ---------------------------------------------------------------------------
# Addresses -- the escrow service expects a different encoding for the
# channel commit than for the payin request.
# ---------------------------------------------------------------------------

def raw_full_address(public_key: PublicKey) -> bytes:
    """Address used for channel commit payer/recipient: full key encoding."""
    return public_key.raw_full()


def raw_address(public_key: PublicKey) -> bytes:
    """Address used for the payin request buyer: native raw key bytes."""
    return public_key.raw()
