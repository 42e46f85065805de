"""Tests for identity loading and key material checks."""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import json

import pytest

from conftest import BUYER_PEER_ID, BUYER_PRIV, BUYER_PUB, ESCROW_PRIV
from crypto import private_key_from_string, save_key_file
from errors import ConfigError, MissingKeyError
from identity import Identity, api_url, load_identity
from protocol import DEFAULT_API_URL


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in ("BTFS_PEER_ID", "BTFS_PUBLIC_KEY", "BTFS_PRIVATE_KEY",
                "BTFS_PRIVATE_KEY_FILE", "BTFS_API_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("BTFS_PATH", str(tmp_path))


def write_config(path, **identity):
    with open(path, "w") as f:
        json.dump({"Identity": identity, "Addresses": {}}, f)


class TestIdentity:
    def test_require_private_key(self, buyer):
        assert buyer.require_private_key().to_string() == BUYER_PRIV

    def test_missing_private_key(self, keyless):
        assert not keyless.has_private_key
        with pytest.raises(MissingKeyError):
            keyless.require_private_key()

    def test_public_key_obj_prefers_configured(self):
        ident = Identity(peer_id="p", public_key=BUYER_PUB, private_key=ESCROW_PRIV)
        assert ident.public_key_obj().to_string() == BUYER_PUB

    def test_public_key_obj_derived(self):
        ident = Identity(peer_id="p", private_key=BUYER_PRIV)
        assert ident.public_key_obj().to_string() == BUYER_PUB

    def test_repr_hides_keys(self, buyer):
        assert BUYER_PRIV not in repr(buyer)
        assert "has_private_key=True" in repr(buyer)


class TestLoadIdentity:
    def test_no_config_no_env(self):
        ident = load_identity()
        assert ident == Identity(peer_id="")

    def test_from_config_file(self, tmp_path):
        write_config(tmp_path / "config", PeerID=BUYER_PEER_ID, PrivKey=BUYER_PRIV)
        ident = load_identity()
        assert ident.peer_id == BUYER_PEER_ID
        assert ident.private_key == BUYER_PRIV
        assert ident.public_key == ""

    def test_env_overrides_config(self, tmp_path, monkeypatch):
        write_config(tmp_path / "config", PeerID="from-config", PrivKey=ESCROW_PRIV)
        monkeypatch.setenv("BTFS_PEER_ID", "from-env")
        monkeypatch.setenv("BTFS_PRIVATE_KEY", BUYER_PRIV)
        monkeypatch.setenv("BTFS_PUBLIC_KEY", BUYER_PUB)
        ident = load_identity()
        assert ident.peer_id == "from-env"
        assert ident.private_key == BUYER_PRIV
        assert ident.public_key == BUYER_PUB

    def test_key_file_beats_config(self, tmp_path, monkeypatch):
        write_config(tmp_path / "config", PeerID="p", PrivKey=ESCROW_PRIV)
        keyfile = tmp_path / "buyer.key"
        save_key_file(str(keyfile), BUYER_PRIV)
        monkeypatch.setenv("BTFS_PRIVATE_KEY_FILE", str(keyfile))
        assert load_identity().private_key == BUYER_PRIV

    def test_missing_key_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BTFS_PRIVATE_KEY_FILE", str(tmp_path / "nope"))
        with pytest.raises(ConfigError):
            load_identity()

    def test_explicit_config_path(self, tmp_path):
        other = tmp_path / "elsewhere.json"
        write_config(other, PeerID="explicit", PrivKey=BUYER_PRIV)
        assert load_identity(str(other)).peer_id == "explicit"

    def test_invalid_json(self, tmp_path):
        (tmp_path / "config").write_text("{not json")
        with pytest.raises(ConfigError):
            load_identity()

    def test_identity_section_wrong_type(self, tmp_path):
        (tmp_path / "config").write_text(json.dumps({"Identity": "oops"}))
        with pytest.raises(ConfigError):
            load_identity()

    def test_warns_without_private_key(self, caplog):
        load_identity()
        assert "no private key configured" in caplog.text

    def test_loaded_key_signs(self, tmp_path):
        write_config(tmp_path / "config", PeerID="p", PrivKey=BUYER_PRIV)
        priv = load_identity().require_private_key()
        assert priv.public_key() == private_key_from_string(BUYER_PRIV).public_key()


class TestApiUrl:
    def test_default(self):
        assert api_url() == DEFAULT_API_URL

    def test_env(self, monkeypatch):
        monkeypatch.setenv("BTFS_API_URL", "http://node:5001")
        assert api_url() == "http://node:5001"
