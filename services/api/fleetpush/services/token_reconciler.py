"""Remove permanently invalid tokens after a multicast delivery."""

import logging
from typing import Sequence

from fleetpush.services.push_service import DeliveryOutcome, ErrorKind
from fleetpush.services.token_registry import TokenRegistry

logger = logging.getLogger(__name__)

PERMANENT_ERROR_KINDS = frozenset({ErrorKind.INVALID_TOKEN, ErrorKind.NOT_REGISTERED})


def is_permanently_invalid(outcome: DeliveryOutcome) -> bool:
    """Transient failures (quota, network, server) never qualify."""
    return not outcome.success and outcome.error_kind in PERMANENT_ERROR_KINDS


def invalid_tokens(tokens: Sequence[str], outcomes: Sequence[DeliveryOutcome]) -> set[str]:
    if len(tokens) != len(outcomes):
        raise ValueError(
            f"Outcome count {len(outcomes)} does not match token count {len(tokens)}"
        )
    return {token for token, outcome in zip(tokens, outcomes) if is_permanently_invalid(outcome)}


class TokenReconciler:
    def __init__(self, registry: TokenRegistry) -> None:
        self._registry = registry

    async def reconcile(
        self,
        identity: str,
        tokens: Sequence[str],
        outcomes: Sequence[DeliveryOutcome],
    ) -> int:
        """Prune the tokens the transport reported as invalid or unregistered.

        Returns the number of distinct tokens scheduled for removal.
        """
        doomed = invalid_tokens(tokens, outcomes)
        if not doomed:
            return 0
        logger.info("Removing %d invalid token(s)", len(doomed))
        await self._registry.prune(identity, doomed)
        return len(doomed)
