"""Gecko Mint: issues a generated NFT to every new community member."""

__version__ = "0.1.0"
