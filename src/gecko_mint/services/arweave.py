"""Arweave client and content publisher.

This module provides everything needed to turn a local artifact into a
durably published, content-addressed object on Arweave:

- ``ArweaveClient``: thin async HTTP wrapper around a gateway node
- ``Transaction``: a format-2 transaction with its signature fields
- ``ArweaveTransaction``: one publish attempt (price, build, sign, submit)
  plus confirmation status for the submitted transaction
- Lookups used by operator tooling (GraphQL by tag, metadata download)
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from gecko_mint.core.errors import MintError
from gecko_mint.core.settings import Settings
from gecko_mint.schemas.metadata import NFTMetadata
from gecko_mint.services.crypto import ArweaveWallet, WalletError
from gecko_mint.utils.hash import (
    MAX_CHUNK_SIZE,
    b64url_decode,
    b64url_encode,
    compute_data_root,
    deep_hash,
    sha256,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_ACCEPTED = 202
HTTP_ALREADY_REPORTED = 208
HTTP_NOT_FOUND = 404

TRANSACTION_FORMAT = 2


class ArweaveError(MintError):
    """Base exception raised for any failure talking to or publishing on Arweave."""


class TransactionNotSubmittedError(ArweaveError):
    """Raised when a transaction status is requested before a successful upload."""


@dataclass(frozen=True)
class ArweaveConfig:
    """Immutable configuration for Arweave operations."""

    base_url: str
    timeout_seconds: float
    reward_multiplier: float


def load_arweave_config(settings: Settings) -> ArweaveConfig:
    """Build configuration object from application settings."""

    return ArweaveConfig(
        base_url=settings.arweave_gateway_url,
        timeout_seconds=float(settings.arweave_http_timeout_seconds),
        reward_multiplier=float(settings.arweave_reward_multiplier),
    )


@dataclass(frozen=True)
class Tag:
    """A UTF-8 key/value pair attached to a transaction for indexing."""

    name: str
    value: str

    @classmethod
    def from_utf8_strs(cls, name: str, value: str) -> Tag:
        if not name:
            raise ValueError("Tag names must not be empty")
        return cls(name=name, value=value)

    @property
    def name_bytes(self) -> bytes:
        return self.name.encode("utf-8")

    @property
    def value_bytes(self) -> bytes:
        return self.value.encode("utf-8")

    def to_json(self) -> dict[str, str]:
        return {"name": b64url_encode(self.name_bytes), "value": b64url_encode(self.value_bytes)}


@dataclass(frozen=True)
class PriceTerms:
    """Reward terms quoted by the network, in winston.

    ``base`` covers the first chunk; every further chunk costs ``incremental``.
    """

    base: int
    incremental: int

    def reward_for(self, data_size: int) -> int:
        chunks = max(1, math.ceil(data_size / MAX_CHUNK_SIZE))
        return self.base + self.incremental * (chunks - 1)


@dataclass(frozen=True)
class TransactionStatus:
    """Confirmation state of a submitted transaction."""

    code: int
    block_height: int | None = None
    confirmations: int | None = None

    @property
    def confirmed(self) -> bool:
        return self.code == HTTP_OK

    def __str__(self) -> str:
        if self.code == HTTP_OK:
            return (
                f"confirmed ({self.confirmations or 0} confirmations, "
                f"block {self.block_height})"
            )
        if self.code == HTTP_ACCEPTED:
            return "pending"
        if self.code == HTTP_NOT_FOUND:
            return "not found"
        return f"unknown (HTTP {self.code})"


@dataclass
class Transaction:
    """A format-2 data transaction.

    ``id`` and ``signature`` stay empty until :meth:`sign` is called. The
    signature binds every other field, so a signed transaction must not be
    edited; a new attempt builds a new transaction.
    """

    owner: bytes
    last_tx: bytes
    reward: int
    data: bytes
    tags: list[Tag] = field(default_factory=list)
    target: bytes = b""
    quantity: int = 0
    data_root: bytes = b""
    id: str = ""
    signature: bytes = b""

    @property
    def data_size(self) -> int:
        return len(self.data)

    def signature_data(self) -> bytes:
        """Return the deep hash the owner signs."""
        return deep_hash(
            [
                str(TRANSACTION_FORMAT).encode(),
                self.owner,
                self.target,
                str(self.quantity).encode(),
                str(self.reward).encode(),
                self.last_tx,
                [[tag.name_bytes, tag.value_bytes] for tag in self.tags],
                str(self.data_size).encode(),
                self.data_root,
            ]
        )

    def sign(self, wallet: ArweaveWallet) -> None:
        if wallet.owner != self.owner:
            raise WalletError("Transaction owner does not match the signing wallet")
        self.signature = wallet.sign(self.signature_data())
        self.id = b64url_encode(sha256(self.signature))

    def to_json(self) -> dict[str, Any]:
        """Return the JSON body accepted by ``POST /tx``."""
        if not self.signature:
            raise ArweaveError("Transaction must be signed before it is serialized")
        return {
            "format": TRANSACTION_FORMAT,
            "id": self.id,
            "last_tx": b64url_encode(self.last_tx),
            "owner": b64url_encode(self.owner),
            "tags": [tag.to_json() for tag in self.tags],
            "target": b64url_encode(self.target),
            "quantity": str(self.quantity),
            "data": b64url_encode(self.data),
            "data_size": str(self.data_size),
            "data_root": b64url_encode(self.data_root),
            "reward": str(self.reward),
            "signature": b64url_encode(self.signature),
        }


def build_transaction(
    wallet: ArweaveWallet,
    data: bytes,
    tags: Iterable[Tag],
    *,
    price_terms: PriceTerms,
    last_tx: str,
) -> Transaction:
    """Create an unsigned transaction carrying ``data`` at the quoted price."""

    return Transaction(
        owner=wallet.owner,
        last_tx=b64url_decode(last_tx),
        reward=price_terms.reward_for(len(data)),
        data=data,
        tags=list(tags),
        data_root=compute_data_root(data) if data else b"",
    )


class ArweaveClient:
    """HTTP client wrapper for an Arweave gateway node."""

    def __init__(
        self,
        config: ArweaveConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(method, path, json=json_data, headers=headers)
        except httpx.HTTPError as exc:
            raise ArweaveError(f"Arweave request {method} {path} failed: {exc}") from exc

    async def get_price(self, data_size: int) -> int:
        """Return the network price in winston for storing ``data_size`` bytes."""
        response = await self._request("GET", f"/price/{data_size}")
        if response.status_code != HTTP_OK:
            raise ArweaveError(f"Unexpected Arweave response ({response.status_code}) for price")
        try:
            return int(response.text.strip())
        except ValueError as exc:
            raise ArweaveError(f"Malformed price from Arweave: {response.text!r}") from exc

    async def get_price_terms(self, reward_multiplier: float) -> PriceTerms:
        """Quote fresh price terms, scaled by ``reward_multiplier``.

        Prices fluctuate, so terms are requested for every transaction and
        never cached. The two quotes are sequential so that a failed quote
        leaves no request behind.
        """
        one_chunk = await self.get_price(MAX_CHUNK_SIZE)
        two_chunks = await self.get_price(MAX_CHUNK_SIZE * 2)
        base = math.ceil(one_chunk * reward_multiplier)
        incremental = math.ceil(max(0, two_chunks - one_chunk) * reward_multiplier)
        return PriceTerms(base=base, incremental=incremental)

    async def get_tx_anchor(self) -> str:
        """Return a recent block anchor to use as ``last_tx``."""
        response = await self._request("GET", "/tx_anchor")
        anchor = response.text.strip()
        if response.status_code != HTTP_OK or not anchor:
            raise ArweaveError(
                f"Unexpected Arweave response ({response.status_code}) for transaction anchor"
            )
        return anchor

    async def post_transaction(self, transaction: Transaction) -> str:
        """Submit a signed transaction and return its id."""
        response = await self._request("POST", "/tx", json_data=transaction.to_json())
        if response.status_code not in (HTTP_OK, HTTP_ALREADY_REPORTED):
            raise ArweaveError(
                f"Arweave rejected transaction {transaction.id} "
                f"({response.status_code}): {response.text[:200]}"
            )
        return transaction.id

    async def get_status(self, tx_id: str) -> TransactionStatus:
        """Return the confirmation status of ``tx_id``."""
        response = await self._request("GET", f"/tx/{tx_id}/status")
        if response.status_code != HTTP_OK:
            return TransactionStatus(code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ArweaveError(f"Malformed status for {tx_id}: {response.text!r}") from exc
        return TransactionStatus(
            code=HTTP_OK,
            block_height=payload.get("block_height"),
            confirmations=payload.get("number_of_confirmations"),
        )

    async def get_data(self, tx_id: str) -> bytes:
        """Download and decode the data of ``tx_id``."""
        response = await self._request(
            "GET",
            f"/tx/{tx_id}/data",
            headers={"Cache-Control": "no-cache"},
        )
        if response.status_code != HTTP_OK:
            raise ArweaveError(
                f"Unexpected Arweave response ({response.status_code}) for data of {tx_id}"
            )
        try:
            return b64url_decode(response.text.strip())
        except ValueError as exc:
            raise ArweaveError(f"Data of {tx_id} is not base64url encoded") from exc

    async def fetch_metadata(self, tx_id: str) -> NFTMetadata:
        """Download a published metadata document."""
        data = await self.get_data(tx_id)
        try:
            return NFTMetadata.model_validate_json(data)
        except ValueError as exc:
            raise ArweaveError(f"Transaction {tx_id} does not hold NFT metadata: {exc}") from exc

    async def find_transactions_by_tag(self, name: str, value: str) -> list[str]:
        """Return ids of transactions tagged ``name=value``, newest first."""
        query = """
        query($name: String!, $values: [String!]!) {
          transactions(tags: [{name: $name, values: $values}]) {
            edges { node { id } }
          }
        }
        """
        response = await self._request(
            "POST",
            "/graphql",
            json_data={"query": query, "variables": {"name": name, "values": [value]}},
        )
        if response.status_code != HTTP_OK:
            raise ArweaveError(
                f"Unexpected Arweave response ({response.status_code}) for GraphQL query"
            )
        try:
            edges = response.json()["data"]["transactions"]["edges"]
            return [edge["node"]["id"] for edge in edges]
        except (ValueError, KeyError, TypeError) as exc:
            raise ArweaveError(f"Malformed GraphQL response: {response.text[:200]!r}") from exc


class ArweaveTransaction:
    """One publish attempt and the receipt it produces.

    An instance is owned by a single upload. Price terms and the signature are
    only valid for the exact transaction they were computed for, so a failed
    attempt is never resumed: the caller creates a new instance and starts
    again from the price quote.
    """

    def __init__(
        self,
        client: ArweaveClient,
        wallet: ArweaveWallet,
        *,
        reward_multiplier: float | None = None,
    ) -> None:
        self.arweave = client
        self.wallet = wallet
        self.keypair_location = wallet.keypair_location
        self.reward_multiplier = (
            client.config.reward_multiplier if reward_multiplier is None else reward_multiplier
        )
        self.file_location: Path | None = None
        self.content_type: str | None = None
        self.id: str | None = None

    async def upload(self, file_location: Path, tags: Sequence[tuple[str, str]]) -> str:
        """Publish the file at ``file_location`` and return the transaction id."""
        try:
            data = await asyncio.to_thread(Path(file_location).read_bytes)
        except OSError as exc:
            raise ArweaveError(f"Cannot read artifact {file_location}: {exc}") from exc
        tx_id = await self.upload_bytes(data, tags)
        self.file_location = Path(file_location)
        return tx_id

    async def upload_bytes(self, data: bytes, tags: Sequence[tuple[str, str]]) -> str:
        """Publish ``data`` and return the transaction id."""
        if self.id is not None:
            raise ArweaveError(f"Transaction {self.id} was already submitted by this instance")

        try:
            tx_tags = [Tag.from_utf8_strs(name, value) for name, value in tags]
        except ValueError as exc:
            raise ArweaveError(f"Invalid tag: {exc}") from exc

        price_terms = await self.arweave.get_price_terms(self.reward_multiplier)
        logger.debug("price terms: %s", price_terms)
        anchor = await self.arweave.get_tx_anchor()

        try:
            transaction = build_transaction(
                self.wallet, data, tx_tags, price_terms=price_terms, last_tx=anchor
            )
            transaction.sign(self.wallet)
        except (WalletError, ValueError) as exc:
            raise ArweaveError(f"Failed to build or sign transaction: {exc}") from exc
        logger.debug("signed txid: %s", transaction.id)

        tx_id = await self.arweave.post_transaction(transaction)

        self.content_type = next(
            (tag.value for tag in tx_tags if tag.name.lower() == "content-type"), None
        )
        self.id = tx_id
        return tx_id

    async def status(self) -> str:
        """Return the confirmation status of the submitted transaction."""
        if self.id is None:
            raise TransactionNotSubmittedError("No transaction has been submitted yet")
        return str(await self.arweave.get_status(self.id))
