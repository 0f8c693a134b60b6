"""Business logic services for the Gecko Mint service."""
