"""Main pipeline orchestrator for Whale Watcher.

This module provides the Pipeline class that wires together the chain
adapters, the aggregator, the price oracle and the alert dispatcher, and
drives the polling and price-refresh cadences.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from redis.asyncio import Redis

from whale_watcher.adapters import AdapterSet, build_adapters
from whale_watcher.aggregator import Aggregator
from whale_watcher.alerter.dispatcher import AlertDispatcher
from whale_watcher.alerter.formatter import format_usd, summary_line
from whale_watcher.config import Settings, get_settings
from whale_watcher.models import FeedResult, Transfer
from whale_watcher.providers.http import JsonHttpClient
from whale_watcher.storage.alert_state import (
    AlertStateStore,
    InMemoryAlertStateStore,
    RedisAlertStateStore,
)
from whale_watcher.storage.errors import StorageError
from whale_watcher.storage.settings_store import (
    InMemorySettingsStore,
    RedisSettingsStore,
    SettingsStore,
    WatchSettings,
)

logger = logging.getLogger(__name__)


class PipelineError(RuntimeError):
    """Raised when the pipeline is used in a state that does not allow it."""


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    polls_completed: int = 0
    transfers_seen: int = 0
    alerts_sent: int = 0
    alert_failures: int = 0
    adapter_failures: int = 0
    errors: int = 0
    last_poll_time: datetime | None = None
    last_error: str | None = None


class Pipeline:
    """Main pipeline orchestrator for Whale Watcher.

    Pipeline flow:
        Price Oracle → Adapters (concurrent) → Aggregator → Feed → Alert Dispatcher

    Each poll cycle reads the current watch settings, so edits made through
    the settings store apply on the next cycle without a restart. Alert
    dispatch runs in the background and never delays the feed.

    Example:
        ```python
        from whale_watcher.config import get_settings
        from whale_watcher.pipeline import Pipeline

        settings = get_settings()
        pipeline = Pipeline(settings)

        await pipeline.start()
        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
        adapter_set: AdapterSet | None = None,
        settings_store: SettingsStore | None = None,
        alert_state: AlertStateStore | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, skip posting webhooks. Overrides settings.dry_run.
            adapter_set: Pre-built adapters; built from settings when omitted.
            settings_store: Watch settings store; Redis or in-memory when omitted.
            alert_state: Alerted-hash store; Redis or in-memory when omitted.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._adapter_set = adapter_set
        self._owns_adapter_set = adapter_set is None
        self._settings_store = settings_store
        self._alert_state = alert_state
        self._owns_settings_store = settings_store is None
        self._owns_alert_state = alert_state is None
        self._aggregator: Aggregator | None = None
        self._dispatcher: AlertDispatcher | None = None
        self._webhook_http: JsonHttpClient | None = None
        self._watch_settings = WatchSettings()
        self._last_feed = FeedResult()

        # Synchronization
        self._stop_event: asyncio.Event | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._price_task: asyncio.Task[None] | None = None
        self._alert_tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def last_feed(self) -> FeedResult:
        """Feed produced by the most recent poll cycle."""
        return self._last_feed

    @property
    def adapter_set(self) -> AdapterSet | None:
        return self._adapter_set

    async def start(self, *, background: bool = True) -> None:
        """Start the pipeline.

        Args:
            background: Run the poll and price loops. With False, components
                are ready for ``poll_once`` calls only.

        Raises:
            PipelineError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise PipelineError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            await self._initialize_components()
            if background:
                self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        Cancels the loops, waits for in-flight alert deliveries and closes
        provider sessions.
        """
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def _initialize_components(self) -> None:
        """Initialize all pipeline components."""
        settings = self._settings

        if settings.redis.enabled and (self._settings_store is None or self._alert_state is None):
            assert settings.redis.url is not None
            self._redis = Redis.from_url(settings.redis.url)
            logger.info("Using Redis stores")

        if self._settings_store is None:
            self._settings_store = (
                RedisSettingsStore(self._redis) if self._redis is not None else InMemorySettingsStore()
            )
        if self._alert_state is None:
            self._alert_state = (
                RedisAlertStateStore(self._redis) if self._redis is not None else InMemoryAlertStateStore()
            )

        if self._adapter_set is None:
            self._adapter_set = build_adapters(settings)
            self._owns_adapter_set = True
        logger.info(
            "Adapters ready: %s (indexers: %s)",
            ", ".join(self._adapter_set.adapters),
            ", ".join(k for k, on in self._adapter_set.indexers.items() if on) or "none",
        )

        self._aggregator = Aggregator(
            self._adapter_set.adapters,
            adapter_timeout=settings.poll.adapter_timeout_seconds,
            limit=settings.poll.feed_limit,
        )

        webhook_http = self._adapter_set.http
        if webhook_http is None:
            self._webhook_http = JsonHttpClient(timeout_seconds=settings.poll.webhook_timeout_seconds)
            webhook_http = self._webhook_http
        self._dispatcher = AlertDispatcher(
            webhook_http,
            self._alert_state,
            timeout_seconds=settings.poll.webhook_timeout_seconds,
            dry_run=self._dry_run,
        )
        if self._dry_run:
            logger.info("Dry-run mode: webhook alerts will be logged, not posted")

    def _start_background_services(self) -> None:
        """Start the poll and price-refresh loops."""
        self._price_task = asyncio.create_task(self._run_price_loop())
        self._poll_task = asyncio.create_task(self._run_poll_loop())

    async def _run_poll_loop(self) -> None:
        if not self._stop_event:
            return

        interval = self._settings.poll.interval_seconds
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.exception("Poll cycle failed")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except TimeoutError:
                pass

    async def _run_price_loop(self) -> None:
        if not self._stop_event or not self._adapter_set:
            return

        interval = self._settings.poll.price_refresh_seconds
        oracle = self._adapter_set.price_oracle
        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    pass
                await oracle.refresh()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("Price refresh loop error: %s", e)

    async def _load_watch_settings(self) -> WatchSettings:
        assert self._settings_store is not None
        try:
            self._watch_settings = await self._settings_store.load()
        except StorageError as e:
            logger.warning("Settings store unavailable, using last known settings: %s", e)
        return self._watch_settings

    async def poll_once(self) -> FeedResult:
        """Run one full cycle: prices, adapters, merge, then schedule alerts.

        Raises:
            PipelineError: If the pipeline has not been started.
        """
        if self._aggregator is None or self._adapter_set is None or self._dispatcher is None:
            raise PipelineError("Pipeline components are not initialized; call start() first")

        watch = await self._load_watch_settings()
        prices = await self._adapter_set.price_oracle.get_prices()
        query = watch.to_query(prices)

        feed = await self._aggregator.poll(query, watch.enabled_adapters())
        self._last_feed = feed

        self._stats.polls_completed += 1
        self._stats.transfers_seen += len(feed.items)
        self._stats.adapter_failures += len(feed.errors)
        self._stats.last_poll_time = datetime.now(UTC)

        top = feed.items[0] if feed.items else None
        logger.info(
            "Poll complete: %d transfers >= %s%s",
            len(feed.items),
            format_usd(watch.min_usd),
            f", top: {summary_line(top)}" if top else "",
        )
        for name, note in feed.notes.items():
            logger.info("%s: %s", name, note)

        if watch.alerts_active and feed.items:
            self._schedule_alerts(list(feed.items), watch)
        return feed

    def _schedule_alerts(self, items: list[Transfer], watch: WatchSettings) -> None:
        task = asyncio.create_task(self._dispatch_alerts(items, watch))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

    async def _dispatch_alerts(self, items: list[Transfer], watch: WatchSettings) -> None:
        if self._dispatcher is None:
            return
        try:
            result = await self._dispatcher.dispatch(items, watch)
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.exception("Alert dispatch failed")
            return
        self._stats.alerts_sent += len(result.sent)
        self._stats.alert_failures += len(result.failed)

    async def wait_for_alerts(self) -> None:
        """Wait until every scheduled alert delivery has finished."""
        if self._alert_tasks:
            await asyncio.gather(*list(self._alert_tasks), return_exceptions=True)

    async def _stop_background_services(self) -> None:
        """Stop background services."""
        for attr in ("_poll_task", "_price_task"):
            task: asyncio.Task[None] | None = getattr(self, attr)
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                setattr(self, attr, None)

        await self.wait_for_alerts()

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._adapter_set and self._owns_adapter_set:
            await self._adapter_set.aclose()
            self._adapter_set = None

        # poll_once must not run against closed clients
        self._aggregator = None
        self._dispatcher = None

        if self._webhook_http:
            await self._webhook_http.aclose()
            self._webhook_http = None

        # Close Redis connection; stores built on it go with it
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            if self._owns_settings_store:
                self._settings_store = None
            if self._owns_alert_state:
                self._alert_state = None

        logger.debug("Resources cleaned up")

    async def run(self) -> None:
        """Start the pipeline and run until interrupted.

        Example:
            ```python
            pipeline = Pipeline()
            try:
                await pipeline.run()
            except KeyboardInterrupt:
                pass
            ```
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
