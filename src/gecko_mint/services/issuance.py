"""Member-onboarding issuance pipeline.

This module provides the IssuanceOrchestrator, which reacts to new-member
events, makes sure each member is issued at most one artifact, and runs the
slow part of the work (generation, publishing, notification) on a bounded
pool of background workers so the event path never waits on it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path

from gecko_mint.core.context import MintContext
from gecko_mint.repositories.ledger_repo import StoreError
from gecko_mint.services.arweave import ArweaveError, ArweaveTransaction
from gecko_mint.services.generator import GeneratedArtifact, GenerationError, create_artifact
from gecko_mint.services.notifier import MAX_MESSAGE_LENGTH, NotificationError

# Configure logger for this module
logger = logging.getLogger(__name__)


class IssuanceDecision(str, enum.Enum):
    """Outcome of offering a new-member event to the orchestrator."""

    SCHEDULED = "scheduled"
    ALREADY_ISSUED = "already_issued"
    IN_FLIGHT = "in_flight"
    IGNORED = "ignored"
    REJECTED = "rejected"
    STORE_UNAVAILABLE = "store_unavailable"


class IssuanceStage(str, enum.Enum):
    """Progress of one issuance attempt."""

    PENDING = "pending"
    GENERATED = "generated"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    RECORDED = "recorded"
    NOTIFIED = "notified"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class IssuanceAttempt:
    """Transient state of one member's pipeline run."""

    member_id: int
    stage: IssuanceStage = IssuanceStage.PENDING
    artifact_path: Path | None = None
    metadata_path: Path | None = None
    transaction_id: str | None = None
    metadata_transaction_id: str | None = None
    error: str | None = None
    history: list[IssuanceStage] = field(default_factory=list)

    def advance(self, stage: IssuanceStage) -> None:
        self.stage = stage
        self.history.append(stage)

    def fail(self, error: Exception) -> None:
        self.error = str(error)
        self.advance(IssuanceStage.FAILED)


class IssuanceOrchestrator:
    """Drives issuance for new members.

    The ledger's insert-if-absent is the only serialization point between
    concurrent attempts for the same member; the in-process ``_pending`` set
    merely avoids queueing obvious duplicates.
    """

    def __init__(
        self,
        context: MintContext,
        *,
        workers: int | None = None,
        queue_capacity: int | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            context: Runtime context built at startup.
            workers: Number of concurrent issuance workers; defaults to settings.
            queue_capacity: Maximum queued members before events are rejected.
        """
        self.context = context
        self.settings = context.settings
        self.ledger = context.ledger
        self._workers = workers or self.settings.issuance_workers
        self._queue: asyncio.Queue[int] = asyncio.Queue(
            maxsize=queue_capacity or self.settings.issuance_queue_capacity
        )
        self._pending: set[int] = set()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the worker pool."""

        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._worker(index), name=f"issuance-worker-{index}")
            for index in range(self._workers)
        ]
        logger.info("Started %d issuance workers", self._workers)

    async def stop(self) -> None:
        """Stop the worker pool, abandoning attempts that are still running.

        Abandoned attempts never wrote a ledger row, so the member is issued
        again on a later event.
        """

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def join(self) -> None:
        """Wait until every queued member has been processed."""
        await self._queue.join()

    def on_session_ready(self, bot_name: str) -> None:
        logger.info("%s is connected!", bot_name)

    async def on_new_member(
        self,
        member_id: int,
        *,
        display_name: str | None = None,
        guild_id: str | None = None,
    ) -> IssuanceDecision:
        """Offer a new-member event; never waits for the issuance itself."""
        logger.debug(
            "A new member joined with member_id %s (%s)", member_id, display_name or "unknown"
        )

        expected_guild = self.settings.discord_guild_id
        if guild_id is not None and expected_guild and guild_id != expected_guild:
            logger.debug("Ignoring member %s from guild %s", member_id, guild_id)
            return IssuanceDecision.IGNORED

        if member_id in self._pending:
            logger.info("Member %s already has an issuance in flight; ignoring", member_id)
            return IssuanceDecision.IN_FLIGHT

        try:
            issued = await asyncio.to_thread(self.ledger.has_record, member_id)
        except StoreError as e:
            logger.error("Ledger unavailable while checking member %s: %s", member_id, e)
            return IssuanceDecision.STORE_UNAVAILABLE

        if issued:
            logger.info("Member %s entered previously and already has an artifact", member_id)
            return IssuanceDecision.ALREADY_ISSUED

        # the lookup yielded to the loop; another event may have queued this member
        if member_id in self._pending:
            return IssuanceDecision.IN_FLIGHT

        try:
            self._queue.put_nowait(member_id)
        except asyncio.QueueFull:
            logger.warning("Issuance queue is full; rejecting member %s", member_id)
            return IssuanceDecision.REJECTED

        self._pending.add(member_id)
        logger.debug("First-time member %s queued for issuance", member_id)
        return IssuanceDecision.SCHEDULED

    async def _worker(self, index: int) -> None:
        while True:
            member_id = await self._queue.get()
            try:
                await self.run_issuance(member_id)
            except Exception:  # a single attempt must not take the worker down
                logger.exception("Worker %d crashed while issuing for member %s", index, member_id)
            finally:
                self._pending.discard(member_id)
                self._queue.task_done()

    async def run_issuance(self, member_id: int) -> IssuanceAttempt:
        """Run generation, publishing, recording and notification for one member."""
        attempt = IssuanceAttempt(member_id=member_id)

        try:
            artifact = await self._generate(member_id)
        except GenerationError as e:
            logger.error("Something went wrong while creating the NFT for %s: %s", member_id, e)
            attempt.fail(e)
            return attempt
        attempt.artifact_path = artifact.artifact_path
        attempt.metadata_path = artifact.metadata_path
        attempt.advance(IssuanceStage.GENERATED)

        attempt.advance(IssuanceStage.UPLOADING)
        try:
            tx_id = await self._publish(attempt, artifact)
        except ArweaveError as e:
            logger.error("Publishing the NFT for member %s failed: %s", member_id, e)
            attempt.fail(e)
            return attempt
        attempt.advance(IssuanceStage.UPLOADED)

        try:
            inserted = await asyncio.to_thread(
                self.ledger.record,
                member_id,
                attempt.transaction_id,
                attempt.metadata_transaction_id,
            )
        except StoreError as e:
            logger.error(
                "Database write error for member %s after publishing %s: %s",
                member_id,
                attempt.transaction_id,
                e,
            )
            attempt.fail(e)
            return attempt

        if not inserted:
            logger.warning(
                "Member %s was issued concurrently; discarding transaction %s",
                member_id,
                attempt.transaction_id,
            )
            attempt.advance(IssuanceStage.DUPLICATE)
            return attempt
        attempt.advance(IssuanceStage.RECORDED)

        try:
            await self.context.notifier.notify(member_id, self._ready_message(tx_id))
        except NotificationError as e:
            logger.error("Sending DM to new member %s failed: %s", member_id, e)
            return attempt
        attempt.advance(IssuanceStage.NOTIFIED)

        logger.info("Issued NFT %s to member %s", attempt.transaction_id, member_id)
        return attempt

    async def _generate(self, member_id: int) -> GeneratedArtifact:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    create_artifact, self.context.generator, member_id, self.settings
                ),
                timeout=self.settings.generation_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(
                f"Generation for member {member_id} exceeded "
                f"{self.settings.generation_timeout_seconds}s"
            ) from e

    def _new_transaction(self) -> ArweaveTransaction:
        return ArweaveTransaction(self.context.arweave, self.context.wallet)

    def _base_tags(self, member_id: int) -> list[tuple[str, str]]:
        return [
            ("App-Name", self.settings.app_name),
            ("App-Version", self.settings.app_version),
            ("Member-Id", str(member_id)),
        ]

    async def _publish(self, attempt: IssuanceAttempt, artifact: GeneratedArtifact) -> str:
        """Upload the artifact, then its metadata document; return the artifact id."""
        content_type = mimetypes.guess_type(artifact.artifact_path.name)[0]
        tags = [("Content-Type", content_type or "application/octet-stream")]
        tags += self._base_tags(attempt.member_id)

        tx_id = await self._new_transaction().upload(artifact.artifact_path, tags)
        attempt.transaction_id = tx_id
        logger.debug("Artifact for member %s published as %s", attempt.member_id, tx_id)

        if artifact.metadata is None:
            return tx_id

        metadata = artifact.metadata.model_copy(deep=True)
        metadata.image = self._transaction_url(tx_id)

        metadata_tags = [("Content-Type", "application/json")]
        metadata_tags += self._base_tags(attempt.member_id)
        metadata_tags.append(("Image-Tx", tx_id))
        attempt.metadata_transaction_id = await self._new_transaction().upload_bytes(
            metadata.to_document(), metadata_tags
        )
        return tx_id

    def _transaction_url(self, tx_id: str) -> str:
        return f"{self.settings.arweave_gateway_url}/{tx_id}"

    def _ready_message(self, tx_id: str) -> str:
        url = self._transaction_url(tx_id)
        # the link must survive the message length limit
        prefix = self.settings.notification_message[: max(0, MAX_MESSAGE_LENGTH - len(url) - 1)]
        return f"{prefix} {url}"
