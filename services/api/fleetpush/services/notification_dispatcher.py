"""Fan a notification out to every token registered for an identity."""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from fleetpush.config import Settings
from fleetpush.exceptions import DeliveryUnavailable, NoRecipientError, RegistryUnavailable
from fleetpush.metrics import invalid_tokens_pruned_total, push_deliveries_total
from fleetpush.services.notification_translator import NotificationContent
from fleetpush.services.push_service import DeliveryOutcome, PushTransport, get_push_transport
from fleetpush.services.token_reconciler import TokenReconciler, is_permanently_invalid
from fleetpush.services.token_registry import TokenRegistry, validate_token

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    identity: str | None
    sent: int = 0
    failed: int = 0
    invalid_removed: int = 0
    tokens: list[str] = field(default_factory=list)
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    prune_error: str | None = None

    @property
    def all_failed(self) -> bool:
        return self.sent == 0 and self.failed > 0

    @property
    def all_failures_permanent(self) -> bool:
        """True when every failed token was invalid or unregistered."""
        failures = [o for o in self.outcomes if not o.success]
        return bool(failures) and all(is_permanently_invalid(o) for o in failures)

    def results(self) -> list[dict[str, Any]]:
        """Per-token summary safe to return to callers (token prefixes only)."""
        summary = []
        for token, outcome in zip(self.tokens, self.outcomes):
            item: dict[str, Any] = {"token": token[:10] + "...", "success": outcome.success}
            if outcome.message_id:
                item["messageId"] = outcome.message_id
            if not outcome.success:
                item["error"] = {
                    "kind": outcome.error_kind.value,
                    "code": outcome.error_code,
                    "message": outcome.error_message,
                }
            summary.append(item)
        return summary


class NotificationDispatcher:
    """Resolve tokens, send one multicast batch and prune invalid tokens."""

    def __init__(
        self,
        registry: TokenRegistry,
        transport: PushTransport,
        reconciler: TokenReconciler | None = None,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._reconciler = reconciler or TokenReconciler(registry)

    async def _send(
        self,
        tokens: list[str],
        notification: NotificationContent,
        data: Mapping[str, Any] | None,
    ) -> list[DeliveryOutcome]:
        str_data = {k: str(v) for k, v in (data or {}).items()}
        outcomes = await self._transport.send_multicast(tokens, notification, str_data)
        if len(outcomes) != len(tokens):
            # Outcomes correlate to tokens by position; a mismatch makes pruning unsafe
            logger.error("Transport returned %d outcomes for %d tokens", len(outcomes), len(tokens))
            raise DeliveryUnavailable("Push gateway returned an inconsistent result")
        return list(outcomes)

    async def dispatch(
        self,
        identity: str,
        notification: NotificationContent,
        data: Mapping[str, Any] | None = None,
    ) -> DispatchReport:
        """Send a notification to all tokens of ``identity``.

        Raises NoRecipientError when the identity has no tokens. Per-token
        failures are reported in the returned counts, never raised.
        """
        tokens = await self._registry.lookup(identity)
        if not tokens:
            logger.info("No tokens registered; nothing to send")
            raise NoRecipientError("No tokens registered for this user")

        logger.info("Dispatching to %d token(s)", len(tokens))
        outcomes = await self._send(tokens, notification, data)

        report = DispatchReport(identity=identity, tokens=tokens, outcomes=outcomes)
        report.sent = sum(1 for o in outcomes if o.success)
        report.failed = len(outcomes) - report.sent
        push_deliveries_total.labels(status="sent").inc(report.sent)
        push_deliveries_total.labels(status="failed").inc(report.failed)

        if report.failed:
            try:
                report.invalid_removed = await self._reconciler.reconcile(identity, tokens, outcomes)
                invalid_tokens_pruned_total.inc(report.invalid_removed)
            except RegistryUnavailable as e:
                # The notification is already out; only cleanup failed
                logger.error("Pruning invalid tokens failed: %s", e)
                report.prune_error = e.message

        logger.info(
            "Dispatch finished: sent=%d failed=%d invalid_removed=%d",
            report.sent,
            report.failed,
            report.invalid_removed,
        )
        return report

    async def dispatch_to_token(
        self,
        token: str,
        notification: NotificationContent,
        data: Mapping[str, Any] | None = None,
    ) -> DispatchReport:
        """Send to one explicit token. No identity owns it here, so nothing is pruned."""
        token = validate_token(token)
        outcomes = await self._send([token], notification, data)
        report = DispatchReport(identity=None, tokens=[token], outcomes=outcomes)
        report.sent = sum(1 for o in outcomes if o.success)
        report.failed = len(outcomes) - report.sent
        push_deliveries_total.labels(status="sent").inc(report.sent)
        push_deliveries_total.labels(status="failed").inc(report.failed)
        return report


def get_notification_dispatcher(settings: Settings, registry: TokenRegistry) -> NotificationDispatcher:
    """Factory that wires up a NotificationDispatcher with its dependencies."""
    return NotificationDispatcher(
        registry=registry,
        transport=get_push_transport(settings),
    )
