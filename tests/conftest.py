import base64
import os
import sys

# Ensure the project root is on the path for all tests
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from crypto import generate_keypair, private_key_from_string, public_key_from_string
from identity import Identity
from messages import (
    KEY_TYPE_ED25519,
    KEY_TYPE_SECP256K1,
    Account,
    ChannelID,
    ChannelState,
    ContractMeta,
    EscrowContract,
    PublicKey,
    SignedChannelState,
    SignedSubmitContractResult,
    SubmitContractResult,
    Timestamp,
    canonical_bytes,
)

# Pre-generated test keypairs (base64 libp2p envelopes, as configured)
BUYER_PRIV, BUYER_PUB = generate_keypair(KEY_TYPE_ED25519)
ESCROW_PRIV, ESCROW_PUB = generate_keypair(KEY_TYPE_ED25519)
SECP_PRIV, SECP_PUB = generate_keypair(KEY_TYPE_SECP256K1)

BUYER_PEER_ID = "16Uiu2HAmBuyerPeer"
FILE_HASH = "QmTestFileHash"


def make_escrow_contract(contract_id="c-1", amount=1000) -> bytes:
    return canonical_bytes(EscrowContract(
        contract_id=contract_id,
        buyer_address=b"\x01" * 32,
        seller_address=b"\x02" * 32,
        auth_address=b"\x03" * 32,
        amount=amount,
        collateral_amount=10,
        withhold_amount=5,
        tokens_per_withhold=2,
        num_payouts=12,
    ))


def make_guard_contract(contract_id="g-1", price=250) -> bytes:
    return canonical_bytes(ContractMeta(
        contract_id=contract_id,
        renter_pid=BUYER_PEER_ID,
        host_pid="16Uiu2HAmHost",
        shard_hash="QmShard",
        shard_index=3,
        shard_file_size=4096,
        file_hash=FILE_HASH,
        rent_start=Timestamp(seconds=1_600_000_000),
        rent_end=Timestamp(seconds=1_700_000_000),
        price=price,
    ))


def make_submit_result(payin_id=42) -> SignedSubmitContractResult:
    state = SignedChannelState(
        channel=ChannelState(
            id=ChannelID(id=7),
            sequence=1,
            **{
                "from": Account(address=PublicKey(key=b"\x0a" * 32), balance=900),
                "to": Account(address=PublicKey(key=b"\x0b" * 32), balance=100),
            },
        ),
    )
    return SignedSubmitContractResult(
        result=SubmitContractResult(payin_id=payin_id, buyer_channel_state=state),
        escrow_signature=b"escrow-sig",
    )


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture
def buyer():
    return Identity(peer_id=BUYER_PEER_ID, public_key=BUYER_PUB, private_key=BUYER_PRIV)


@pytest.fixture
def keyless():
    return Identity(peer_id=BUYER_PEER_ID, public_key=BUYER_PUB)


@pytest.fixture
def buyer_priv():
    return private_key_from_string(BUYER_PRIV)


@pytest.fixture
def buyer_pub():
    return public_key_from_string(BUYER_PUB)


@pytest.fixture
def escrow_pub():
    return public_key_from_string(ESCROW_PUB)
