"""Data access for the member issuance ledger."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gecko_mint.core.errors import MintError
from gecko_mint.models.member_record import MemberRecord

__all__ = ["LedgerStore", "StoreError"]

logger = logging.getLogger(__name__)


class StoreError(MintError):
    """Raised when the ledger database cannot be read or written."""


class LedgerStore:
    """Single source of truth for "has this member already received an artifact".

    Methods are synchronous and open a fresh session per call, so one store can
    be shared by every issuance task; callers on the event loop dispatch them
    with ``asyncio.to_thread``.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        """Initialize the store with a thread-safe session factory."""
        self._session_factory = session_factory

    def has_record(self, member_id: int) -> bool:
        """Return True when ``member_id`` has already been issued an artifact."""
        try:
            with self._session_factory() as session:
                found = session.scalar(
                    select(MemberRecord.member_id).where(MemberRecord.member_id == member_id)
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Ledger lookup failed for member {member_id}: {exc}") from exc
        return found is not None

    def get(self, member_id: int) -> MemberRecord | None:
        """Return the ledger row for ``member_id`` if there is one."""
        try:
            with self._session_factory() as session:
                return session.get(MemberRecord, member_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Ledger lookup failed for member {member_id}: {exc}") from exc

    def record(
        self,
        member_id: int,
        transaction_id: str | None = None,
        metadata_transaction_id: str | None = None,
    ) -> bool:
        """Insert a ledger row unless one already exists.

        The primary key makes this an atomic insert-if-absent: when two tasks
        race for the same member, exactly one insert wins and the other sees
        a uniqueness violation.

        Returns:
            True if the row was inserted, False if the member was already recorded.

        Raises:
            StoreError: If the database is unreachable or rejects the write for
                any reason other than the row already existing.
        """
        try:
            with self._session_factory() as session:
                session.add(
                    MemberRecord(
                        member_id=member_id,
                        transaction_id=transaction_id,
                        metadata_transaction_id=metadata_transaction_id,
                    )
                )
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.info("Member %s was already recorded; keeping existing row", member_id)
                    return False
        except SQLAlchemyError as exc:
            raise StoreError(f"Ledger write failed for member {member_id}: {exc}") from exc
        return True
