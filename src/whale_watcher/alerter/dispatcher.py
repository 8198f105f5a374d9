"""Best-effort webhook alerts with at-most-once delivery per transaction."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from whale_watcher.alerter.formatter import build_payload, summary_line
from whale_watcher.models import Transfer
from whale_watcher.providers.errors import ProviderError
from whale_watcher.providers.http import JsonHttpClient
from whale_watcher.storage.alert_state import AlertStateStore
from whale_watcher.storage.errors import StorageError
from whale_watcher.storage.settings_store import WatchSettings

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 5.0


@dataclass
class DispatchResult:
    """What one dispatch pass did."""

    candidates: int = 0
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def claimed(self) -> int:
        return len(self.sent) + len(self.failed)


class AlertDispatcher:
    """Posts one webhook per transfer at or above the alert threshold.

    The hash is claimed in the alert state *before* the POST. A failed POST
    is logged and not retried, so a transfer alerts at most once even across
    overlapping poll cycles or restarts.

    Example:
        ```python
        dispatcher = AlertDispatcher(http, InMemoryAlertStateStore())
        result = await dispatcher.dispatch(feed.items, watch_settings)
        ```
    """

    def __init__(
        self,
        http: JsonHttpClient,
        state: AlertStateStore,
        *,
        timeout_seconds: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
        dry_run: bool = False,
    ) -> None:
        self._http = http
        self._state = state
        self._timeout = timeout_seconds
        self._dry_run = dry_run

    async def dispatch(self, transfers: Iterable[Transfer], settings: WatchSettings) -> DispatchResult:
        result = DispatchResult()
        if not settings.alerts_active:
            return result

        webhook = settings.alert_webhook.strip()
        threshold = settings.alert_usd
        try:
            already = await self._state.load()
        except StorageError as e:
            logger.warning("Alert state unavailable, skipping alerts this cycle: %s", e)
            return result

        for transfer in transfers:
            if transfer.usd_value < threshold or transfer.tx_hash in already:
                continue
            result.candidates += 1
            try:
                claimed = await self._state.mark_alerted(transfer.tx_hash)
            except StorageError as e:
                logger.warning("Could not claim %s, not alerting: %s", transfer.tx_hash, e)
                result.skipped.append(transfer.tx_hash)
                continue
            if not claimed:
                result.skipped.append(transfer.tx_hash)
                continue

            if self._dry_run:
                logger.info("[dry-run] Would alert: %s", summary_line(transfer))
                result.sent.append(transfer.tx_hash)
                continue

            try:
                await self._http.post(webhook, build_payload(transfer, threshold), timeout_seconds=self._timeout)
            except ProviderError as e:
                logger.warning("Webhook alert for %s failed: %s", transfer.tx_hash, e)
                result.failed.append(transfer.tx_hash)
                continue
            logger.info("Alert sent: %s", summary_line(transfer))
            result.sent.append(transfer.tx_hash)

        return result
