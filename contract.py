"""Contract batch signing.

The coordinator hands out a batch of named, base64-encoded contracts. Each
one is decoded into the message type selected by the session status, signed
over its canonical serialization, and the signature replaces the contract in
the returned batch.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum

from codec import Encoding, bytes_to_string, string_to_bytes
from crypto import PrivateKey, private_key_from_string, sign_message
from errors import SchemaError
from messages import ContractMeta, EscrowContract, parse_strict
from protocol import SessionStatus

logger = logging.getLogger(__name__)


class ContractVariant(Enum):
    ESCROW = "escrow"
    GUARD = "guard"

    @classmethod
    def for_status(cls, session_status: str) -> "ContractVariant":
        """initSignReadyEscrow selects escrow contracts; every other status
        selects guard contract metadata."""
        if session_status == SessionStatus.INIT_SIGN_READY_ESCROW.value:
            return cls.ESCROW
        return cls.GUARD

    @property
    def message_class(self):
        return EscrowContract if self is ContractVariant.ESCROW else ContractMeta

    @property
    def identifying_fields(self) -> tuple[str, ...]:
        """Fields every contract of this variant carries. A payload of the
        other variant can parse cleanly when no field collides by wire type;
        these catch it."""
        if self is ContractVariant.ESCROW:
            return ("contract_id", "buyer_address", "seller_address")
        return ("contract_id", "renter_pid", "host_pid", "shard_hash")


@dataclass(frozen=True)
class ContractItem:
    key: str
    contract: str

    def to_dict(self) -> dict:
        return {"key": self.key, "contract": self.contract}


@dataclass(frozen=True)
class Contracts:
    items: tuple[ContractItem, ...] = ()

    def __len__(self):
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @classmethod
    def from_response(cls, data: dict | list | None) -> "Contracts":
        """Build from a coordinator response: {"contracts": [...]} or a bare list."""
        if data is None:
            return cls()
        if isinstance(data, dict):
            data = data.get("contracts") or data.get("Contracts") or []
        if not isinstance(data, list):
            raise SchemaError(f"contract batch must be a list, got {type(data).__name__}")
        items = []
        for i, entry in enumerate(data):
            if not isinstance(entry, dict) or "key" not in entry or "contract" not in entry:
                raise SchemaError(f"contract batch item {i} is malformed")
            items.append(ContractItem(key=str(entry["key"]), contract=str(entry["contract"])))
        return cls(tuple(items))

    def to_json(self) -> str:
        """Submission form: a bare JSON list of {key, contract}."""
        return json.dumps([item.to_dict() for item in self.items])


def decode_contract(contract: str, variant: ContractVariant):
    """Base64-decode and strictly parse one contract into *variant*'s message."""
    data = string_to_bytes(contract, Encoding.BASE64)
    message = parse_strict(variant.message_class, data)
    missing = [name for name in variant.identifying_fields if not getattr(message, name)]
    if missing:
        raise SchemaError(f"{variant.value} contract is missing {', '.join(missing)}")
    return message


def sign_contract(item: ContractItem, private_key: PrivateKey, variant: ContractVariant) -> ContractItem:
    message = decode_contract(item.contract, variant)
    signature = sign_message(private_key, message)
    return ContractItem(key=item.key, contract=bytes_to_string(signature, Encoding.BASE64))


def sign_contracts(contracts: Contracts, private_key: str | PrivateKey, session_status: str) -> Contracts:
    """Sign every contract in the batch.

    Args:
        contracts: Batch fetched from the coordinator.
        private_key: Signer key, a parsed PrivateKey or its base64 envelope.
        session_status: Coordinator status; selects the contract schema.

    Returns:
        A new batch with the same keys in the same order, each contract
        replaced by its base64 detached signature. The first failing item
        aborts the batch.
    """
    if not isinstance(private_key, PrivateKey):
        private_key = private_key_from_string(private_key)
    variant = ContractVariant.for_status(session_status)
    logger.debug("signing %d %s contracts", len(contracts), variant.value)
    return Contracts(tuple(sign_contract(item, private_key, variant) for item in contracts))
