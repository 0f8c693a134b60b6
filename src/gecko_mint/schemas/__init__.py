"""Pydantic schemas for the Gecko Mint service."""

from .metadata import NFTAttribute, NFTMetadata

__all__ = ["NFTAttribute", "NFTMetadata"]
