"""SQLAlchemy model for the member issuance ledger."""

from sqlalchemy import BigInteger, Text
from sqlalchemy.orm import Mapped, mapped_column

from gecko_mint.db.session import Base


class MemberRecord(Base):
    """A community member who has been issued an artifact.

    Rows are written once, after the artifact has been published, and are
    never updated or deleted. Presence of a row means "issued".
    """

    __tablename__ = "user_register"

    member_id: Mapped[int] = mapped_column(
        "discord_user_id", BigInteger, primary_key=True, autoincrement=False
    )
    # Network transaction holding the artifact bytes.
    transaction_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Network transaction holding the metadata document, when one was generated.
    metadata_transaction_id: Mapped[str | None] = mapped_column(Text, nullable=True)
