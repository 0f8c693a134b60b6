"""Operator tooling for inspecting and re-running member issuance.

Usage:
    python -m gecko_mint.scripts.operator inspect <member_id>
    python -m gecko_mint.scripts.operator issue <member_id>

``issue`` runs the full pipeline in the foreground for a member who has no
ledger row yet, e.g. after a generation or publishing failure.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from gecko_mint.core.context import MintContext, build_context
from gecko_mint.core.errors import MintError
from gecko_mint.core.logging import configure_logging
from gecko_mint.core.settings import Settings
from gecko_mint.services.issuance import IssuanceOrchestrator, IssuanceStage


async def inspect_member(context: MintContext, member_id: int) -> int:
    """Print the ledger row and network state for ``member_id``."""
    record = await asyncio.to_thread(context.ledger.get, member_id)
    if record is None:
        print(f"member {member_id}: no ledger record")
        tx_ids = await context.arweave.find_transactions_by_tag("Member-Id", str(member_id))
        if tx_ids:
            print(f"  unrecorded transactions on the network: {', '.join(tx_ids)}")
        return 1

    print(f"member {member_id}: issued")
    if record.transaction_id:
        status = await context.arweave.get_status(record.transaction_id)
        print(f"  artifact {record.transaction_id}: {status}")
    if record.metadata_transaction_id:
        status = await context.arweave.get_status(record.metadata_transaction_id)
        print(f"  metadata {record.metadata_transaction_id}: {status}")
        metadata = await context.arweave.fetch_metadata(record.metadata_transaction_id)
        print(f"  name: {metadata.name}")
        for attribute in metadata.attributes:
            print(f"    {attribute.trait_type}: {attribute.value}")
    return 0


async def issue_member(context: MintContext, member_id: int) -> int:
    """Run the issuance pipeline for ``member_id`` unless it is already recorded."""
    if await asyncio.to_thread(context.ledger.has_record, member_id):
        print(f"member {member_id} already has an artifact; nothing to do")
        return 0

    attempt = await IssuanceOrchestrator(context).run_issuance(member_id)
    print(f"member {member_id}: {attempt.stage.value}")
    if attempt.transaction_id:
        print(f"  artifact transaction: {attempt.transaction_id}")
    if attempt.error:
        print(f"  error: {attempt.error}")
    return 0 if attempt.stage in (IssuanceStage.NOTIFIED, IssuanceStage.RECORDED) else 1


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    context = build_context(settings)
    try:
        if args.command == "inspect":
            return await inspect_member(context, args.member_id)
        return await issue_member(context, args.member_id)
    finally:
        await context.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    subcommands = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("inspect", "show ledger and network state for a member"),
        ("issue", "run issuance for a member without a ledger record"),
    ):
        command = subcommands.add_parser(name, help=help_text)
        command.add_argument("member_id", type=int)
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(settings.log_level)
    try:
        return asyncio.run(_run(args, settings))
    except MintError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
