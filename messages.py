"""Protocol message schemas exchanged with the remote coordinator.

The schemas are fixed by the coordinator (ledger, escrow and guard protos,
plus the libp2p key envelope). They are registered into a private descriptor
pool at import time, so no generated *_pb2 modules are needed.

Signing always covers the canonical serialization (see canonical_bytes).
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory, timestamp_pb2
from google.protobuf.message import DecodeError, Message
from google.protobuf.unknown_fields import UnknownFieldSet

from errors import SchemaError

_F = descriptor_pb2.FieldDescriptorProto

_INT32 = _F.TYPE_INT32
_INT64 = _F.TYPE_INT64
_BYTES = _F.TYPE_BYTES
_STRING = _F.TYPE_STRING
_BOOL = _F.TYPE_BOOL
_MESSAGE = _F.TYPE_MESSAGE
_ENUM = _F.TYPE_ENUM

_TIMESTAMP = ".google.protobuf.Timestamp"


def _field(name, number, ftype, type_name=None, label=_F.LABEL_OPTIONAL):
    f = _F(name=name, number=number, type=ftype, label=label)
    if type_name:
        f.type_name = type_name
    return f


def _message(file_proto, name, *fields):
    msg = file_proto.message_type.add(name=name)
    msg.field.extend(fields)
    return msg


def _enum(file_proto, name, values):
    enum = file_proto.enum_type.add(name=name)
    for value_name, number in values:
        enum.value.add(name=value_name, number=number)
    return enum


def _file(name, package, syntax="proto3", deps=()):
    fp = descriptor_pb2.FileDescriptorProto(name=name, package=package, syntax=syntax)
    fp.dependency.extend(deps)
    return fp


# ---------------------------------------------------------------------------
# crypto.pb -- libp2p key envelope (proto2, both fields required)
# ---------------------------------------------------------------------------

KEY_TYPE_RSA = 0
KEY_TYPE_ED25519 = 1
KEY_TYPE_SECP256K1 = 2
KEY_TYPE_ECDSA = 3

_crypto = _file("crypto/pb/crypto.proto", "crypto.pb", syntax="proto2")
_enum(_crypto, "KeyType", [
    ("RSA", KEY_TYPE_RSA),
    ("Ed25519", KEY_TYPE_ED25519),
    ("Secp256k1", KEY_TYPE_SECP256K1),
    ("ECDSA", KEY_TYPE_ECDSA),
])
for _name in ("PublicKey", "PrivateKey"):
    _message(
        _crypto, _name,
        _field("Type", 1, _ENUM, ".crypto.pb.KeyType", label=_F.LABEL_REQUIRED),
        _field("Data", 2, _BYTES, label=_F.LABEL_REQUIRED),
    )


# ---------------------------------------------------------------------------
# ledger
# ---------------------------------------------------------------------------

_ledger = _file("protos/ledger/ledger.proto", "ledger")
_message(_ledger, "PublicKey", _field("key", 1, _BYTES))
_message(
    _ledger, "SignedPublicKey",
    _field("key", 1, _MESSAGE, ".ledger.PublicKey"),
    _field("signature", 2, _BYTES),
)
_message(
    _ledger, "ChannelCommit",
    _field("payer", 1, _MESSAGE, ".ledger.PublicKey"),
    _field("recipient", 2, _MESSAGE, ".ledger.PublicKey"),
    _field("amount", 3, _INT64),
    _field("payer_id", 4, _INT64),
)
_message(
    _ledger, "SignedChannelCommit",
    _field("channel", 1, _MESSAGE, ".ledger.ChannelCommit"),
    _field("signature", 2, _BYTES),
)
_message(_ledger, "ChannelID", _field("id", 1, _INT64))
_message(
    _ledger, "Account",
    _field("address", 1, _MESSAGE, ".ledger.PublicKey"),
    _field("balance", 2, _INT64),
)
_message(
    _ledger, "ChannelState",
    _field("id", 1, _MESSAGE, ".ledger.ChannelID"),
    _field("sequence", 2, _INT64),
    _field("from", 3, _MESSAGE, ".ledger.Account"),
    _field("to", 4, _MESSAGE, ".ledger.Account"),
)
_message(
    _ledger, "SignedChannelState",
    _field("channel", 1, _MESSAGE, ".ledger.ChannelState"),
    _field("from_signature", 2, _BYTES),
    _field("to_signature", 3, _BYTES),
)


# ---------------------------------------------------------------------------
# escrow
# ---------------------------------------------------------------------------

_escrow = _file(
    "protos/escrow/escrow.proto", "escrow",
    deps=["google/protobuf/timestamp.proto", "protos/ledger/ledger.proto"],
)
_enum(_escrow, "Schedule", [
    ("Monthly", 0),
    ("Quarterly", 1),
    ("Annually", 2),
    ("Customized", 3),
])
_message(
    _escrow, "EscrowContract",
    _field("contract_id", 1, _STRING),
    _field("buyer_address", 2, _BYTES),
    _field("seller_address", 3, _BYTES),
    _field("auth_address", 4, _BYTES),
    _field("amount", 5, _INT64),
    _field("collateral_amount", 6, _INT64),
    _field("withhold_amount", 7, _INT64),
    _field("tokens_per_withhold", 8, _INT64),
    _field("payout_schedule", 9, _ENUM, ".escrow.Schedule"),
    _field("num_payouts", 10, _INT32),
    _field("custom_payout_period", 11, _INT64),
    _field("contract_created", 12, _MESSAGE, _TIMESTAMP),
)
_message(
    _escrow, "SubmitContractResult",
    _field("payin_id", 1, _INT64),
    _field("buyer_channel_state", 2, _MESSAGE, ".ledger.SignedChannelState"),
)
_message(
    _escrow, "SignedSubmitContractResult",
    _field("result", 1, _MESSAGE, ".escrow.SubmitContractResult"),
    _field("escrow_signature", 2, _BYTES),
)
_message(
    _escrow, "PayinRequest",
    _field("payin_id", 1, _INT64),
    _field("buyer_address", 2, _BYTES),
    _field("buyer_channel_state", 3, _MESSAGE, ".ledger.SignedChannelState"),
)
_message(
    _escrow, "SignedPayinRequest",
    _field("request", 1, _MESSAGE, ".escrow.PayinRequest"),
    _field("buyer_signature", 2, _BYTES),
)


# ---------------------------------------------------------------------------
# guard
# ---------------------------------------------------------------------------

_guard = _file(
    "protos/guard/guard.proto", "guard",
    deps=["google/protobuf/timestamp.proto"],
)
_message(
    _guard, "ContractMeta",
    _field("contract_id", 1, _STRING),
    _field("renter_pid", 2, _STRING),
    _field("host_pid", 3, _STRING),
    _field("shard_hash", 4, _STRING),
    _field("shard_index", 5, _INT32),
    _field("shard_file_size", 6, _INT64),
    _field("file_hash", 7, _STRING),
    _field("rent_start", 8, _MESSAGE, _TIMESTAMP),
    _field("rent_end", 9, _MESSAGE, _TIMESTAMP),
    _field("guard_pid", 10, _STRING),
    _field("escrow_pid", 11, _STRING),
    _field("price", 12, _INT64),
    _field("amount", 13, _INT64),
    _field("collateral_amount", 14, _INT64),
    _field("challenge_required", 15, _BOOL),
)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

_pool = descriptor_pool.DescriptorPool()

_timestamp_file = descriptor_pb2.FileDescriptorProto()
timestamp_pb2.DESCRIPTOR.CopyToProto(_timestamp_file)

for _fp in (_timestamp_file, _crypto, _ledger, _escrow, _guard):
    _pool.AddSerializedFile(_fp.SerializeToString())


def _cls(full_name):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(full_name))


Libp2pPublicKey = _cls("crypto.pb.PublicKey")
Libp2pPrivateKey = _cls("crypto.pb.PrivateKey")

PublicKey = _cls("ledger.PublicKey")
SignedPublicKey = _cls("ledger.SignedPublicKey")
ChannelCommit = _cls("ledger.ChannelCommit")
SignedChannelCommit = _cls("ledger.SignedChannelCommit")
ChannelID = _cls("ledger.ChannelID")
Account = _cls("ledger.Account")
ChannelState = _cls("ledger.ChannelState")
SignedChannelState = _cls("ledger.SignedChannelState")

EscrowContract = _cls("escrow.EscrowContract")
SubmitContractResult = _cls("escrow.SubmitContractResult")
SignedSubmitContractResult = _cls("escrow.SignedSubmitContractResult")
PayinRequest = _cls("escrow.PayinRequest")
SignedPayinRequest = _cls("escrow.SignedPayinRequest")

ContractMeta = _cls("guard.ContractMeta")

Timestamp = _cls("google.protobuf.Timestamp")


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def canonical_bytes(message: Message) -> bytes:
    """Deterministic serialization -- the exact bytes a signature covers."""
    return message.SerializeToString(deterministic=True)


def _has_unknown_fields(message: Message) -> bool:
    if len(UnknownFieldSet(message)):
        return True
    for field, value in message.ListFields():
        if field.type != field.TYPE_MESSAGE:
            continue
        children = value if field.is_repeated else [value]
        if any(_has_unknown_fields(child) for child in children):
            return True
    return False


def parse_strict(cls, data: bytes) -> Message:
    """Parse *data* as *cls*, rejecting corrupt bytes and foreign fields.

    Fields whose wire type does not match the schema land in the unknown
    field set and are rejected. A payload of a different message type is
    only caught that way when one of its fields collides; callers that must
    tell two schemas apart also check identifying fields
    (contract.decode_contract).
    """
    msg = cls()
    try:
        msg.ParseFromString(data)
    except (DecodeError, ValueError) as e:
        raise SchemaError(f"cannot decode {cls.DESCRIPTOR.full_name}: {e}") from e
    if not msg.IsInitialized():
        raise SchemaError(f"{cls.DESCRIPTOR.full_name} is missing required fields")
    if _has_unknown_fields(msg):
        raise SchemaError(
            f"payload carries fields not defined by {cls.DESCRIPTOR.full_name}"
        )
    return msg
