import json
from pathlib import Path

import pytest

from gecko_mint.services.crypto import ArweaveWallet, WalletError
from gecko_mint.utils.hash import b64url_decode, b64url_encode, sha256


def test_wallet_loads_owner_and_address(wallet: ArweaveWallet, rsa_jwk: dict[str, str]) -> None:
    assert wallet.owner == b64url_decode(rsa_jwk["n"])
    assert wallet.owner_b64 == rsa_jwk["n"]
    assert wallet.address == b64url_encode(sha256(wallet.owner))
    assert wallet.keypair_location is not None


def test_signature_verifies_and_detects_tampering(wallet: ArweaveWallet) -> None:
    signature = wallet.sign(b"deep hash")

    assert len(signature) == len(wallet.owner)
    assert wallet.verify(b"deep hash", signature)
    assert not wallet.verify(b"other hash", signature)


def test_missing_keyfile_raises(tmp_path: Path) -> None:
    with pytest.raises(WalletError, match="Cannot read keyfile"):
        ArweaveWallet.from_keypair_path(tmp_path / "missing.json")


def test_invalid_json_keyfile_raises(tmp_path: Path) -> None:
    keyfile = tmp_path / "wallet.json"
    keyfile.write_text("{not json", encoding="utf-8")
    with pytest.raises(WalletError, match="not valid JSON"):
        ArweaveWallet.from_keypair_path(keyfile)


def test_keyfile_missing_private_field_raises(tmp_path: Path, rsa_jwk: dict[str, str]) -> None:
    incomplete = {key: value for key, value in rsa_jwk.items() if key != "d"}
    keyfile = tmp_path / "wallet.json"
    keyfile.write_text(json.dumps(incomplete), encoding="utf-8")
    with pytest.raises(WalletError, match="'d'"):
        ArweaveWallet.from_keypair_path(keyfile)


def test_non_rsa_key_is_rejected(rsa_jwk: dict[str, str]) -> None:
    with pytest.raises(WalletError, match="Unsupported key type"):
        ArweaveWallet({**rsa_jwk, "kty": "EC"})
