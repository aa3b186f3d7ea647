"""Unit tests for key handling and the secp256k1 signer."""

import base64
import json

import pytest

from filwallet.address import IDAddress, new_bls_address
from filwallet.errors import InvalidInput
from filwallet.keys import (
    KeyPair,
    Secp256k1Signer,
    Signature,
    SigType,
    derive_key_pair,
    fil_derivation_path,
    key_pair_from_lotus_export,
)

PRIVATE_KEY = bytes(range(1, 33))


@pytest.fixture
def signer():
    return Secp256k1Signer()


@pytest.fixture
def key_pair():
    return Secp256k1Signer.key_pair(PRIVATE_KEY)


@pytest.mark.unit
class TestSigType:
    def test_from_name(self):
        assert SigType.from_name("secp256k1") == SigType.SECP256K1
        assert SigType.from_name(" BLS ") == SigType.BLS

    def test_unknown_name(self):
        with pytest.raises(InvalidInput):
            SigType.from_name("ed25519")


@pytest.mark.unit
class TestSignature:
    def test_bytes_prefix_with_type(self):
        signature = Signature(SigType.SECP256K1, b"\xaa\xbb")
        assert signature.to_bytes() == b"\x01\xaa\xbb"

    def test_json_round_trip(self):
        signature = Signature(SigType.BLS, b"\x01" * 96)
        data = signature.to_json()
        assert data["Type"] == 2
        assert Signature.from_json(data) == signature


@pytest.mark.unit
class TestKeyPair:
    def test_private_key_not_in_repr(self, key_pair):
        assert PRIVATE_KEY.hex() not in repr(key_pair)
        assert "private_key" not in repr(key_pair)

    def test_address_is_secp256k1(self, key_pair):
        assert str(key_pair.address).startswith("f1")
        assert key_pair.sig_type == SigType.SECP256K1

    def test_testnet_network(self):
        pair = Secp256k1Signer.key_pair(PRIVATE_KEY, network="t")
        assert str(pair.address).startswith("t1")

    def test_generate_yields_distinct_keys(self):
        assert Secp256k1Signer.generate().address != Secp256k1Signer.generate().address

    def test_invalid_private_key(self):
        with pytest.raises(InvalidInput):
            Secp256k1Signer.key_pair(b"\x00" * 32)


@pytest.mark.unit
class TestSecp256k1Signer:
    def test_signature_is_65_bytes(self, signer, key_pair):
        signature = signer.sign(SigType.SECP256K1, key_pair.private_key, b"payload")
        assert signature.sig_type == SigType.SECP256K1
        assert len(signature.data) == 65
        assert signature.data[64] in (0, 1, 2, 3)

    def test_signing_is_deterministic(self, signer, key_pair):
        first = signer.sign(SigType.SECP256K1, key_pair.private_key, b"payload")
        second = signer.sign(SigType.SECP256K1, key_pair.private_key, b"payload")
        assert first == second

    def test_verify_accepts_own_signature(self, signer, key_pair):
        signature = signer.sign(SigType.SECP256K1, key_pair.private_key, b"payload")
        assert signer.verify(signature, key_pair.address, b"payload") is True

    def test_verify_rejects_other_data(self, signer, key_pair):
        signature = signer.sign(SigType.SECP256K1, key_pair.private_key, b"payload")
        assert signer.verify(signature, key_pair.address, b"tampered") is False

    def test_verify_rejects_other_address(self, signer, key_pair):
        other = Secp256k1Signer.key_pair(bytes(range(33, 65)))
        signature = signer.sign(SigType.SECP256K1, key_pair.private_key, b"payload")
        assert signer.verify(signature, other.address, b"payload") is False

    def test_verify_rejects_id_address(self, signer, key_pair):
        signature = signer.sign(SigType.SECP256K1, key_pair.private_key, b"payload")
        assert signer.verify(signature, IDAddress(1000), b"payload") is False

    def test_bls_requires_external_signer(self, signer):
        with pytest.raises(InvalidInput):
            signer.sign(SigType.BLS, b"\x01" * 32, b"payload")

    def test_bls_verification_requires_external_signer(self, signer):
        signature = Signature(SigType.BLS, b"\x01" * 96)
        with pytest.raises(InvalidInput):
            signer.verify(signature, new_bls_address(b"\x01" * 48), b"payload")


@pytest.mark.unit
class TestDerivation:
    def test_derivation_path(self):
        assert fil_derivation_path(0) == "m/44'/461'/0'/0/0"
        assert fil_derivation_path(3) == "m/44'/461'/0'/0/3"

    def test_negative_index(self):
        with pytest.raises(InvalidInput):
            fil_derivation_path(-1)

    def test_derive_key_pair_delegates_to_deriver(self, key_pair):
        class StubDeriver:
            def __init__(self):
                self.calls = []

            def derive_key(self, path, seed):
                self.calls.append((path, seed))
                return key_pair

        deriver = StubDeriver()
        assert derive_key_pair(deriver, b"seed", index=2) is key_pair
        assert deriver.calls == [("m/44'/461'/0'/0/2", b"seed")]


@pytest.mark.unit
class TestLotusExport:
    def _key_info(self, key_type="secp256k1"):
        return json.dumps(
            {"Type": key_type, "PrivateKey": base64.b64encode(PRIVATE_KEY).decode()}
        )

    def test_hex_lotus(self, key_pair):
        exported = self._key_info().encode().hex()
        loaded = key_pair_from_lotus_export(exported)
        assert isinstance(loaded, KeyPair)
        assert loaded.address == key_pair.address

    def test_json_lotus(self, key_pair):
        loaded = key_pair_from_lotus_export(self._key_info(), key_format="json-lotus")
        assert loaded.address == key_pair.address

    def test_bls_key_rejected(self):
        with pytest.raises(InvalidInput):
            key_pair_from_lotus_export(self._key_info("bls"), key_format="json-lotus")

    def test_unknown_format(self):
        with pytest.raises(InvalidInput):
            key_pair_from_lotus_export(self._key_info(), key_format="pem")

    def test_garbage(self):
        with pytest.raises(InvalidInput):
            key_pair_from_lotus_export("zz-not-hex")
