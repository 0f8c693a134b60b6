# tests/conftest.py
from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.engine import Engine

from gecko_mint.core.context import MintContext
from gecko_mint.core.settings import Settings
from gecko_mint.db.session import build_engine, build_session_factory, create_tables
from gecko_mint.repositories.ledger_repo import LedgerStore
from gecko_mint.services.arweave import ArweaveClient, Tag, Transaction, load_arweave_config
from gecko_mint.services.crypto import ArweaveWallet
from gecko_mint.services.notifier import DiscordNotifier, load_notifier_config
from gecko_mint.utils.hash import MAX_CHUNK_SIZE, b64url_decode, b64url_encode

TEST_GUILD_ID = "777"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _b64_int(value: int) -> str:
    return b64url_encode(value.to_bytes((value.bit_length() + 7) // 8, "big"))


@pytest.fixture(scope="session")
def rsa_jwk() -> dict[str, str]:
    """A freshly generated Arweave-style JWK keyfile."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    numbers = key.private_numbers()
    return {
        "kty": "RSA",
        "n": _b64_int(numbers.public_numbers.n),
        "e": _b64_int(numbers.public_numbers.e),
        "d": _b64_int(numbers.d),
        "p": _b64_int(numbers.p),
        "q": _b64_int(numbers.q),
        "dp": _b64_int(numbers.dmp1),
        "dq": _b64_int(numbers.dmq1),
        "qi": _b64_int(numbers.iqmp),
    }


@pytest.fixture()
def settings(tmp_path: Path, rsa_jwk: dict[str, str]) -> Settings:
    keyfile = tmp_path / "wallet.json"
    keyfile.write_text(json.dumps(rsa_jwk), encoding="utf-8")

    assets = tmp_path / "assets"
    assets.mkdir()
    config_path = assets / "config.json"
    config_path.write_text(json.dumps({"layers": ["background", "body"]}), encoding="utf-8")

    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'ledger.db'}",
        DISCORD_BOT_TOKEN="test-bot-token",
        DISCORD_GUILD_ID=TEST_GUILD_ID,
        DISCORD_API_BASE_URL="https://discord.test/api/v10",
        EVENT_SHARED_SECRET=None,
        ARWEAVE_BASE_URL="https://arweave.test/",
        ARWEAVE_KEYPAIR_PATH=keyfile,
        ASSETS_DIR=assets,
        GENERATED_DIR=tmp_path / "generated",
        GENERATOR_CONFIG_PATH=config_path,
        GENERATION_TIMEOUT_SECONDS=10,
        ISSUANCE_WORKERS=2,
        ISSUANCE_QUEUE_CAPACITY=10,
    )


@pytest.fixture()
def wallet(settings: Settings) -> ArweaveWallet:
    return ArweaveWallet.from_keypair_path(settings.arweave_keypair_path)


@pytest.fixture()
def engine(settings: Settings) -> Iterator[Engine]:
    engine = build_engine(settings.database_url_sync)
    create_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def ledger(engine: Engine) -> LedgerStore:
    return LedgerStore(build_session_factory(engine))


class FakeArweaveNode:
    """In-memory gateway node serving the endpoints the publisher uses."""

    def __init__(self) -> None:
        self.anchor = b64url_encode(b"\x01" * 48)
        self.price_one_chunk = 1000
        self.price_two_chunks = 1500
        self.price_status = 200
        self.post_status = 200
        self.transactions: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.startswith("/price/"):
            if self.price_status != 200:
                return httpx.Response(self.price_status, text="price service unavailable")
            size = int(path.rsplit("/", 1)[1])
            price = self.price_one_chunk if size <= MAX_CHUNK_SIZE else self.price_two_chunks
            return httpx.Response(200, text=str(price))

        if path == "/tx_anchor":
            return httpx.Response(200, text=self.anchor)

        if path == "/tx" and request.method == "POST":
            if self.post_status not in (200, 208):
                return httpx.Response(self.post_status, text="Transaction verification failed.")
            body = json.loads(request.content)
            self.transactions[body["id"]] = body
            return httpx.Response(self.post_status, text="OK")

        if path == "/graphql":
            variables = json.loads(request.content)["variables"]
            ids = [
                tx_id
                for tx_id in reversed(list(self.transactions))
                if self.tags(tx_id).get(variables["name"]) in variables["values"]
            ]
            edges = [{"node": {"id": tx_id}} for tx_id in ids]
            return httpx.Response(200, json={"data": {"transactions": {"edges": edges}}})

        parts = path.strip("/").split("/")
        if len(parts) == 3 and parts[0] == "tx":
            body = self.transactions.get(parts[1])
            if body is None:
                return httpx.Response(404, text="Not Found")
            if parts[2] == "status":
                return httpx.Response(
                    200, json={"block_height": 1_250_000, "number_of_confirmations": 3}
                )
            if parts[2] == "data":
                return httpx.Response(200, text=body["data"])

        return httpx.Response(404, text="Not Found")

    def tags(self, tx_id: str) -> dict[str, str]:
        return {
            b64url_decode(tag["name"]).decode(): b64url_decode(tag["value"]).decode()
            for tag in self.transactions[tx_id]["tags"]
        }

    def data(self, tx_id: str) -> bytes:
        return b64url_decode(self.transactions[tx_id]["data"])

    def submitted(self, tx_id: str) -> Transaction:
        """Rebuild the transaction exactly as it was posted."""
        body = self.transactions[tx_id]
        return Transaction(
            owner=b64url_decode(body["owner"]),
            last_tx=b64url_decode(body["last_tx"]),
            reward=int(body["reward"]),
            data=b64url_decode(body["data"]),
            tags=[
                Tag(b64url_decode(tag["name"]).decode(), b64url_decode(tag["value"]).decode())
                for tag in body["tags"]
            ],
            target=b64url_decode(body["target"]),
            quantity=int(body["quantity"]),
            data_root=b64url_decode(body["data_root"]),
            id=body["id"],
            signature=b64url_decode(body["signature"]),
        )


class FakeDiscord:
    """Records direct messages sent through the REST API."""

    def __init__(self) -> None:
        self.status_code = 200
        self.messages: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"message": "Cannot send messages"})

        path = request.url.path
        payload = json.loads(request.content)
        if "/users/" in path and path.endswith("/channels"):
            return httpx.Response(200, json={"id": f"dm-{payload['recipient_id']}", "type": 1})
        if path.endswith("/messages"):
            channel_id = path.split("/")[-2]
            self.messages.append((channel_id, payload["content"]))
            return httpx.Response(200, json={"id": "1", "channel_id": channel_id})
        return httpx.Response(404, json={"message": "Unknown route"})


class FakeGenerator:
    """Writes a tiny PNG and a metadata document per member."""

    def __init__(self) -> None:
        self.calls: list[int] = []
        self.error: Exception | None = None
        # a dict is written as JSON, a str is written verbatim
        self.metadata_document: dict[str, Any] | str | None = None

    def generate(self, member_id: int, asset_dir: Path, output_dir: Path) -> Path:
        self.calls.append(member_id)
        if self.error is not None:
            raise self.error
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / f"{member_id}.png"
        path.write_bytes(PNG_MAGIC + str(member_id).encode())
        return path

    def generate_metadata(self, member_id: int, config_path: Path) -> Path:
        out_dir = config_path.parent / "metadata"
        out_dir.mkdir(exist_ok=True)
        path = out_dir / f"{member_id}.json"
        if isinstance(self.metadata_document, str):
            path.write_text(self.metadata_document, encoding="utf-8")
            return path
        if self.metadata_document is not None:
            path.write_text(json.dumps(self.metadata_document), encoding="utf-8")
            return path
        document = {
            "name": f"Gecko #{member_id}",
            "description": "A gecko for a new member",
            "image": "",
            "edition": member_id,
            "attributes": [{"trait_type": "Background", "value": "Teal"}],
            "dna": "f00d",
        }
        path.write_text(json.dumps(document), encoding="utf-8")
        return path


@pytest.fixture()
def arweave_node() -> FakeArweaveNode:
    return FakeArweaveNode()


@pytest.fixture()
def discord() -> FakeDiscord:
    return FakeDiscord()


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def arweave_client(settings: Settings, arweave_node: FakeArweaveNode) -> ArweaveClient:
    return ArweaveClient(
        load_arweave_config(settings),
        transport=httpx.MockTransport(arweave_node.handler),
    )


@pytest.fixture()
def notifier(settings: Settings, discord: FakeDiscord) -> DiscordNotifier:
    return DiscordNotifier(
        load_notifier_config(settings),
        transport=httpx.MockTransport(discord.handler),
    )


@pytest.fixture()
def context(
    settings: Settings,
    engine: Engine,
    ledger: LedgerStore,
    wallet: ArweaveWallet,
    arweave_client: ArweaveClient,
    notifier: DiscordNotifier,
    generator: FakeGenerator,
) -> MintContext:
    return MintContext(
        settings=settings,
        engine=engine,
        ledger=ledger,
        wallet=wallet,
        arweave=arweave_client,
        notifier=notifier,
        generator=generator,
    )
