"""Payment artifact signing.

Four flows, each consuming one UnsignedData envelope from the coordinator:

- sign_data:            detached signature over the raw unsigned text
- sign_balance_data:    signed public-key attestation for ledger queries
- sign_channel_commit:  buyer -> escrow payment channel commitment
- sign_payin_request:   counter-signed channel state + payin request

Each flow checks for a private key before touching the payload. The
encoding each artifact travels in is fixed per flow (see *_PAYLOAD).
"""

import logging
from dataclasses import dataclass

from codec import Base64Payload, Encoding, RawPayload, string_to_bytes
from crypto import (
    PublicKey as VerifyingKey,
    raw_address,
    raw_full_address,
    sign_message,
    unmarshal_public_key,
    verify_message,
)
from errors import SchemaError
from identity import Identity
from messages import (
    ChannelCommit,
    PayinRequest,
    PublicKey,
    SignedChannelCommit,
    SignedChannelState,
    SignedPayinRequest,
    SignedPublicKey,
    SignedSubmitContractResult,
    canonical_bytes,
    parse_strict,
)

logger = logging.getLogger(__name__)

SIGN_DATA_PAYLOAD = RawPayload
BALANCE_PAYLOAD = Base64Payload
CHANNEL_COMMIT_PAYLOAD = Base64Payload
PAYIN_REQUEST_PAYLOAD = RawPayload


@dataclass(frozen=True)
class UnsignedData:
    """One unit of unsigned work. `unsigned` is interpreted per flow."""

    unsigned: str
    opcode: str = ""
    price: int = 0

    @classmethod
    def from_response(cls, data: dict) -> "UnsignedData":
        if not isinstance(data, dict):
            raise SchemaError(f"unsigned data must be an object, got {type(data).__name__}")
        try:
            return cls(
                unsigned=str(data.get("Unsigned", data.get("unsigned", ""))),
                opcode=str(data.get("Opcode", data.get("opcode", ""))),
                price=int(data.get("Price", data.get("price", 0)) or 0),
            )
        except (TypeError, ValueError) as e:
            raise SchemaError(f"malformed unsigned data: {e}") from e


# ---------------------------------------------------------------------------
# a. Generic detached signature
# ---------------------------------------------------------------------------

def sign_data(unsigned: UnsignedData, identity: Identity) -> bytes:
    """Sign the UTF-8 bytes of the unsigned text (no base64 decoding)."""
    private_key = identity.require_private_key()
    return private_key.sign(string_to_bytes(unsigned.unsigned, Encoding.TEXT))


def encode_signed_data(signature: bytes) -> str:
    return SIGN_DATA_PAYLOAD.encode(signature)


# ---------------------------------------------------------------------------
# b. Balance attestation
# ---------------------------------------------------------------------------

def sign_balance_data(unsigned: UnsignedData, identity: Identity):
    """Attest to the buyer's public key so the ledger can answer a balance
    query. The unsigned payload carries nothing this flow needs."""
    private_key = identity.require_private_key()
    ledger_key = PublicKey(key=private_key.public_key().raw())
    return SignedPublicKey(key=ledger_key, signature=sign_message(private_key, ledger_key))


def encode_balance_payload(signed_public_key) -> str:
    text = BALANCE_PAYLOAD.encode(canonical_bytes(signed_public_key))
    if logger.isEnabledFor(logging.DEBUG):
        echoed = parse_strict(SignedPublicKey, BALANCE_PAYLOAD.decode(text))
        logger.debug("balance attestation round-trip ok: key=%s..., %d byte signature",
                     echoed.key.key.hex()[:16], len(echoed.signature))
    return text


def verify_balance_data(signed_public_key, public_key: VerifyingKey) -> bool:
    if signed_public_key.key.key != public_key.raw():
        return False
    return verify_message(public_key, signed_public_key.key, signed_public_key.signature)


# ---------------------------------------------------------------------------
# c. Channel commit
# ---------------------------------------------------------------------------

def sign_channel_commit(unsigned: UnsignedData, identity: Identity,
                        total_price: int, payer_id: int):
    """Open a payment channel from the buyer to the escrow service.

    Args:
        unsigned: `unsigned` holds the escrow's public key, base64 libp2p
            envelope.
        identity: Buyer identity; its configured public key is the payer.
        total_price: Channel amount. UnsignedData.price is advisory only.
        payer_id: Nanosecond issue time of the session token.
    """
    private_key = identity.require_private_key()
    escrow_key = unmarshal_public_key(CHANNEL_COMMIT_PAYLOAD.decode(unsigned.unsigned))
    buyer_key = identity.public_key_obj()

    commit = ChannelCommit(
        payer=PublicKey(key=raw_full_address(buyer_key)),
        recipient=PublicKey(key=raw_full_address(escrow_key)),
        amount=total_price,
        payer_id=payer_id,
    )
    return SignedChannelCommit(channel=commit, signature=sign_message(private_key, commit))


def encode_channel_commit(signed_commit) -> str:
    return CHANNEL_COMMIT_PAYLOAD.encode(canonical_bytes(signed_commit))


def verify_channel_commit(signed_commit, public_key: VerifyingKey) -> bool:
    return verify_message(public_key, signed_commit.channel, signed_commit.signature)


# ---------------------------------------------------------------------------
# d. Payin request
# ---------------------------------------------------------------------------

def sign_payin_request(unsigned: UnsignedData, identity: Identity):
    """Counter-sign the escrow's channel state and request the payin.

    `unsigned` holds a serialized SignedSubmitContractResult as raw text
    (not base64). The buyer signs the channel state as received, stores
    that signature in from_signature, then signs the payin request built
    around it.
    """
    private_key = identity.require_private_key()
    result = parse_strict(SignedSubmitContractResult, PAYIN_REQUEST_PAYLOAD.decode(unsigned.unsigned))
    if not result.HasField("result"):
        raise SchemaError("submit contract result is empty")
    if not result.result.HasField("buyer_channel_state"):
        raise SchemaError("submit contract result has no buyer channel state")

    chan_state = SignedChannelState()
    chan_state.CopyFrom(result.result.buyer_channel_state)
    chan_state.from_signature = sign_message(private_key, chan_state)

    request = PayinRequest(
        payin_id=result.result.payin_id,
        buyer_address=raw_address(private_key.public_key()),
        buyer_channel_state=chan_state,
    )
    return SignedPayinRequest(request=request, buyer_signature=sign_message(private_key, request))


def encode_payin_request(signed_request) -> str:
    return PAYIN_REQUEST_PAYLOAD.encode(canonical_bytes(signed_request))


def verify_payin_request(signed_request, public_key: VerifyingKey) -> bool:
    """Check both the request signature and the channel state counter-signature."""
    state = SignedChannelState()
    state.CopyFrom(signed_request.request.buyer_channel_state)
    from_signature = state.from_signature
    state.ClearField("from_signature")
    return (
        verify_message(public_key, state, from_signature)
        and verify_message(public_key, signed_request.request, signed_request.buyer_signature)
    )
