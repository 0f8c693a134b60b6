"""Runtime context shared by the orchestrator and its collaborators.

Everything the issuance pipeline needs is built once at startup by
:func:`build_context` and handed to constructors explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from gecko_mint.core.settings import Settings
from gecko_mint.db.session import build_engine, build_session_factory
from gecko_mint.repositories.ledger_repo import LedgerStore
from gecko_mint.services.arweave import ArweaveClient, load_arweave_config
from gecko_mint.services.crypto import ArweaveWallet
from gecko_mint.services.generator import ArtifactGenerator, load_generator
from gecko_mint.services.notifier import DiscordNotifier, load_notifier_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MintContext:
    """Immutable bundle of configuration and long-lived collaborators."""

    settings: Settings
    engine: Engine
    ledger: LedgerStore
    wallet: ArweaveWallet
    arweave: ArweaveClient
    notifier: DiscordNotifier
    generator: ArtifactGenerator | None

    async def aclose(self) -> None:
        """Release network clients."""
        await self.arweave.close()
        await self.notifier.close()
        self.engine.dispose()


def build_context(settings: Settings) -> MintContext:
    """Construct the runtime context from settings.

    Raises:
        WalletError: If the signing keyfile cannot be loaded.
        GenerationError: If ``GENERATOR`` names something that cannot be imported.
    """
    engine = build_engine(settings.database_url_sync, echo=settings.sql_debug)
    wallet = ArweaveWallet.from_keypair_path(settings.arweave_keypair_path)
    logger.info("Loaded Arweave wallet %s", wallet.address)

    generator = load_generator(settings.generator)
    if generator is None:
        logger.warning("GENERATOR is not set; every issuance attempt will fail at generation")

    return MintContext(
        settings=settings,
        engine=engine,
        ledger=LedgerStore(build_session_factory(engine)),
        wallet=wallet,
        arweave=ArweaveClient(load_arweave_config(settings)),
        notifier=DiscordNotifier(load_notifier_config(settings)),
        generator=generator,
    )
