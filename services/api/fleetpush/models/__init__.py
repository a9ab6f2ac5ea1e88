"""FleetPush database models."""

from fleetpush.models.token_document import TokenDocument

__all__ = [
    "TokenDocument",
]
