# src/gecko_mint/services/crypto.py
"""Wallet handling and transaction signing for Arweave."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from gecko_mint.core.errors import MintError
from gecko_mint.utils.hash import b64url_decode, b64url_encode, sha256

_JWK_PRIVATE_FIELDS = ("n", "e", "d", "p", "q", "dp", "dq", "qi")
_PSS_SALT_LENGTH = 32


class WalletError(MintError):
    """Raised when the signing keyfile is missing, malformed or unusable."""


def _jwk_int(jwk: Mapping[str, Any], name: str) -> int:
    try:
        return int.from_bytes(b64url_decode(str(jwk[name])), "big")
    except KeyError as err:
        raise WalletError(f"Keyfile is missing the '{name}' field") from err
    except ValueError as err:
        raise WalletError(f"Keyfile field '{name}' is not valid base64url") from err


def _pss_padding() -> padding.PSS:
    return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=_PSS_SALT_LENGTH)


class ArweaveWallet:
    """An RSA keypair loaded from an Arweave JWK keyfile.

    The wallet is read-only after construction and may be shared by every
    concurrent upload; signing never mutates it.
    """

    def __init__(self, jwk: Mapping[str, Any], keypair_location: Path | None = None) -> None:
        """Build the wallet from a decoded JWK document.

        Args:
            jwk: RSA private key in JSON Web Key form.
            keypair_location: Path the key was read from, kept for diagnostics.
        """
        if jwk.get("kty", "RSA") != "RSA":
            raise WalletError(f"Unsupported key type: {jwk.get('kty')!r}")

        n, e, d, p, q, dp, dq, qi = (_jwk_int(jwk, name) for name in _JWK_PRIVATE_FIELDS)
        try:
            public_numbers = rsa.RSAPublicNumbers(e, n)
            self._private_key = rsa.RSAPrivateNumbers(
                p, q, d, dp, dq, qi, public_numbers
            ).private_key()
        except ValueError as err:
            raise WalletError(f"Keyfile does not describe a valid RSA key: {err}") from err

        self.keypair_location = keypair_location
        self._owner = n.to_bytes((n.bit_length() + 7) // 8, "big")

    @classmethod
    def from_keypair_path(cls, keypair_location: Path) -> ArweaveWallet:
        """Load a wallet from a JWK keyfile on disk."""
        try:
            jwk = json.loads(Path(keypair_location).read_text(encoding="utf-8"))
        except OSError as err:
            raise WalletError(f"Cannot read keyfile {keypair_location}: {err}") from err
        except json.JSONDecodeError as err:
            raise WalletError(f"Keyfile {keypair_location} is not valid JSON: {err}") from err
        if not isinstance(jwk, dict):
            raise WalletError(f"Keyfile {keypair_location} does not contain a JSON object")
        return cls(jwk, keypair_location=Path(keypair_location))

    @property
    def owner(self) -> bytes:
        """Raw RSA modulus; Arweave calls this the transaction owner."""
        return self._owner

    @property
    def owner_b64(self) -> str:
        return b64url_encode(self._owner)

    @property
    def address(self) -> str:
        """Wallet address: base64url SHA-256 of the owner."""
        return b64url_encode(sha256(self._owner))

    def sign(self, message: bytes) -> bytes:
        """Sign ``message`` with RSA-PSS over SHA-256.

        Args:
            message: Exact bytes to sign (for transactions, the deep hash).

        Returns:
            Raw signature bytes
        """
        return self._private_key.sign(message, _pss_padding(), hashes.SHA256())

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature produced by :meth:`sign`."""
        try:
            self._private_key.public_key().verify(
                signature, message, _pss_padding(), hashes.SHA256()
            )
            return True
        except InvalidSignature:
            return False
