"""SQLAlchemy models for the Gecko Mint service."""

from .member_record import MemberRecord

__all__ = ["MemberRecord"]
