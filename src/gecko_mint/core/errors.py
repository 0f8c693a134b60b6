"""Exception family shared by every external boundary of the issuance pipeline."""

from __future__ import annotations


class MintError(RuntimeError):
    """Base exception for failures inside the issuance pipeline.

    Each collaborator raises its own subclass so that the orchestrator can
    handle every boundary explicitly instead of matching on messages.
    """
