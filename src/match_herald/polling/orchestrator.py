"""
Polling orchestrator for Match Herald.

This module drives the periodic scan of every guild's linked players, detects
matches that finished since the last scan, and posts one announcement per new
match to the guild's match channel.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import structlog

from ..config import PollingConfig
from ..exceptions import NotFoundError, TransientOriginError
from ..models import ActivitySummary, GroupDescriptor, MatchRecord, TrackedBinding
from ..notifications import NotificationSink, render_match_post
from ..origin_client import OriginClient
from ..state.manager import BindingStore, MatchHistoryStore, StateStore
from .cache import OriginCache
from .metrics import MetricsCollector, PollingCycleMetrics
from .rate_limiter import DestinationRateLimiter
from .summary import find_standing_delta, latest_match_id, summarize_match_for_player

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def run_bounded(
    items: Sequence[T],
    limit: int,
    handler: Callable[[T], Awaitable[None]],
) -> None:
    """
    Run ``handler`` over ``items`` with at most ``limit`` calls in flight.

    Workers claim the next index from a shared cursor. The claim never
    awaits between reading and advancing the cursor, so no two workers
    take the same item.
    """
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            await handler(items[index])

    worker_count = min(limit, len(items))
    if worker_count > 0:
        await asyncio.gather(*(worker() for _ in range(worker_count)))


class PollingOrchestrator:
    """
    Orchestrates match polling across all guilds.

    For every (guild, user) pair the latest match id is compared with the
    stored marker:

    - no marker: store the id without posting (baseline)
    - same id: nothing to do
    - new id: post the match if the channel's limiter admits it, then store
      the id; a post over the limit is dropped and the id is stored anyway so
      the match is never announced late

    Only one cycle runs at a time; a tick that arrives while a cycle is in
    flight is skipped.
    """

    def __init__(
        self,
        origin_client: OriginClient,
        origin_cache: OriginCache,
        binding_store: BindingStore,
        state_store: StateStore,
        notification_sink: NotificationSink,
        destination_limiter: DestinationRateLimiter,
        config: PollingConfig,
        history_store: MatchHistoryStore | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the polling orchestrator.

        Args:
            origin_client: Match data provider client
            origin_cache: Cache in front of the provider
            binding_store: Guild and linked account source
            state_store: Poll marker storage
            notification_sink: Where match posts are sent
            destination_limiter: Per-channel post limiter
            config: Polling configuration
            history_store: Optional store for announced matches
            metrics: Optional metrics collector
        """
        self.origin_client = origin_client
        self.origin_cache = origin_cache
        self.binding_store = binding_store
        self.state_store = state_store
        self.notification_sink = notification_sink
        self.destination_limiter = destination_limiter
        self.config = config
        self.history_store = history_store
        self.metrics = metrics or MetricsCollector()

        self._cycle_in_flight = False
        self._timer_task: asyncio.Task[None] | None = None
        self._cycle_tasks: set[asyncio.Task[Any]] = set()

    def is_running(self) -> bool:
        """Check if the polling timer is active."""
        return self._timer_task is not None and not self._timer_task.done()

    def is_cycle_in_flight(self) -> bool:
        return self._cycle_in_flight

    async def start(self) -> None:
        """Start the polling timer."""
        if self.is_running():
            logger.warning("Polling already running")
            return

        logger.info(
            "Starting match poller",
            interval_seconds=self.config.interval_seconds,
            initial_delay_seconds=self.config.initial_delay_seconds,
            concurrency=self.config.concurrency,
        )
        self._timer_task = asyncio.create_task(self._timer_loop())

    async def stop(self) -> None:
        """Stop the polling timer and any cycle still running."""
        tasks = list(self._cycle_tasks)
        if self._timer_task is not None:
            tasks.append(self._timer_task)
            self._timer_task = None

        if not tasks:
            return

        logger.info("Stopping match poller")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _timer_loop(self) -> None:
        """Fire a cycle after the initial delay and then on a fixed interval."""
        await asyncio.sleep(self.config.initial_delay_seconds)
        while True:
            self._launch_cycle()
            await asyncio.sleep(self.config.interval_seconds)

    def _launch_cycle(self) -> None:
        # Each tick runs as its own task so a slow cycle never delays the timer
        task = asyncio.create_task(self.run_cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def run_cycle(self) -> PollingCycleMetrics | None:
        """
        Run one polling cycle over every enabled guild.

        Returns:
            Metrics for the cycle, or None if another cycle was still running
        """
        if self._cycle_in_flight:
            self.metrics.record_skipped_cycle()
            logger.info("Previous polling cycle still running, skipping tick")
            return None

        self._cycle_in_flight = True
        cycle = self.metrics.start_cycle(uuid.uuid4().hex[:12])
        logger.info("Polling cycle started", cycle_id=cycle.cycle_id)

        try:
            await self._run_cycle(cycle)
        except Exception as e:
            logger.error("Polling cycle failed", cycle_id=cycle.cycle_id, error=str(e))
            cycle.aborted = True
            cycle.errors.append(str(e))
        finally:
            self._cycle_in_flight = False
            self.metrics.end_cycle()

        logger.info(
            "Polling cycle completed",
            cycle_id=cycle.cycle_id,
            duration_seconds=cycle.duration_seconds,
            groups=cycle.groups_processed,
            bindings=cycle.bindings_checked,
            baselines=cycle.baselines_recorded,
            sent=cycle.notifications_sent,
            dropped=cycle.notifications_dropped,
            failed=cycle.notifications_failed,
            errors=len(cycle.errors),
        )
        return cycle

    async def _run_cycle(self, cycle: PollingCycleMetrics) -> None:
        try:
            groups = await self.binding_store.list_groups_with_polling_enabled()
        except Exception as e:
            logger.error("Failed to list guilds for polling", error=str(e))
            cycle.aborted = True
            cycle.errors.append(f"list_groups: {e}")
            return

        for group in groups:
            if not group.is_pollable(self.config.match_posts_feature):
                continue
            await self._process_group(group, cycle)

        expired = self.origin_cache.cache.cleanup_expired()
        windows = self.destination_limiter.cleanup_expired()
        if expired or windows:
            logger.debug(
                "Cache cleanup completed",
                expired_entries=expired,
                expired_windows=windows,
            )

    async def _process_group(
        self, group: GroupDescriptor, cycle: PollingCycleMetrics
    ) -> None:
        """Check every linked player in one guild."""
        try:
            bindings = await self.binding_store.list_bindings(group.group_id)
        except Exception as e:
            logger.error(
                "Failed to list linked players",
                group_id=group.group_id,
                error=str(e),
            )
            cycle.errors.append(f"{group.group_id}: {e}")
            return

        cycle.groups_processed += 1
        complete = [binding for binding in bindings if binding.is_complete()]
        if len(complete) < len(bindings):
            cycle.bindings_skipped += len(bindings) - len(complete)
            logger.debug(
                "Skipping incomplete links",
                group_id=group.group_id,
                skipped=len(bindings) - len(complete),
            )

        async def handle(binding: TrackedBinding) -> None:
            await self._process_binding_safely(group, binding, cycle)

        await run_bounded(complete, self.config.concurrency, handle)

    async def _process_binding_safely(
        self,
        group: GroupDescriptor,
        binding: TrackedBinding,
        cycle: PollingCycleMetrics,
    ) -> None:
        """Process one binding; no failure here may reach the rest of the cycle."""
        try:
            await self._process_binding(group, binding, cycle)
        except NotFoundError:
            cycle.not_found += 1
            logger.debug(
                "No match history found",
                group_id=group.group_id,
                player=binding.player,
            )
        except TransientOriginError as e:
            cycle.errors.append(f"{binding.player}: {e}")
            logger.warning(
                "Match fetch failed, retrying next cycle",
                group_id=group.group_id,
                player=binding.player,
                error=str(e),
            )
        except Exception as e:
            cycle.errors.append(f"{binding.player}: {e}")
            logger.error(
                "Failed to process linked player",
                group_id=group.group_id,
                player=binding.player,
                error=str(e),
            )

    async def _process_binding(
        self,
        group: GroupDescriptor,
        binding: TrackedBinding,
        cycle: PollingCycleMetrics,
    ) -> None:
        cycle.bindings_checked += 1
        destination_id = str(group.destination_id)

        match = await self._fetch_latest_match(binding)
        match_id = latest_match_id(match)
        if match is None or match_id is None:
            return

        try:
            last_id = await self.state_store.get_last_activity_id(
                group.group_id, binding.subject_id
            )
        except Exception as e:
            cycle.bindings_skipped += 1
            logger.warning(
                "Could not read last match, skipping player this cycle",
                group_id=group.group_id,
                subject_id=binding.subject_id,
                error=str(e),
            )
            return

        if last_id is None:
            await self._advance_marker(group, binding, match_id)
            cycle.baselines_recorded += 1
            logger.debug(
                "Recorded baseline match",
                group_id=group.group_id,
                player=binding.player,
                match_id=match_id,
            )
            return

        if last_id == match_id:
            cycle.unchanged += 1
            return

        summary = summarize_match_for_player(match, binding.name, binding.tag)
        if summary is None:
            cycle.bindings_skipped += 1
            logger.debug(
                "Player missing from match roster, advancing marker",
                player=binding.player,
                match_id=match_id,
            )
            await self._advance_marker(group, binding, match_id)
            return

        if not self.destination_limiter.can_post(destination_id):
            cycle.notifications_dropped += 1
            logger.warning(
                "Channel post limit reached, skipping match post",
                destination_id=destination_id,
                player=binding.player,
                match_id=match_id,
            )
            await self._advance_marker(group, binding, match_id)
            return

        summary.standing_delta = await self._try_get_standing_delta(binding, match_id)
        summary.display_name = binding.display_name

        try:
            sent = await self.notification_sink.send(
                destination_id, render_match_post(summary)
            )
        except Exception as e:
            logger.warning(
                "Failed to send match post",
                destination_id=destination_id,
                error=str(e),
            )
            sent = False

        await self._advance_marker(group, binding, match_id)

        if not sent:
            cycle.notifications_failed += 1
            return

        cycle.notifications_sent += 1
        logger.info(
            "Posted match",
            group_id=group.group_id,
            destination_id=destination_id,
            player=binding.player,
            match_id=match_id,
        )
        await self._record_history(binding, summary)

    async def _fetch_latest_match(
        self, binding: TrackedBinding
    ) -> dict[str, Any] | None:
        """Get the player's most recent match, cache first."""
        matches = await self.origin_cache.get_recent_matches(
            self.origin_client,
            binding.region,
            binding.name,
            binding.tag,
            self.config.match_count,
            self.config.match_mode,
        )
        if isinstance(matches, list) and matches:
            return matches[0]
        return None

    async def _try_get_standing_delta(
        self, binding: TrackedBinding, match_id: str
    ) -> int | None:
        """Look up the rank change for a match; any failure just omits it."""
        try:
            history = await self.origin_client.get_standing_history(
                binding.region, binding.name, binding.tag
            )
            return find_standing_delta(history, match_id)
        except Exception as e:
            logger.debug(
                "Standing history lookup failed",
                player=binding.player,
                error=str(e),
            )
            return None

    async def _advance_marker(
        self, group: GroupDescriptor, binding: TrackedBinding, match_id: str
    ) -> None:
        try:
            stored = await self.state_store.set_last_activity_id(
                group.group_id, binding.subject_id, match_id
            )
        except Exception as e:
            logger.warning(
                "Failed to store last match",
                group_id=group.group_id,
                subject_id=binding.subject_id,
                error=str(e),
            )
            return

        if not stored:
            logger.warning(
                "Last match was not stored",
                group_id=group.group_id,
                subject_id=binding.subject_id,
            )

    async def _record_history(
        self, binding: TrackedBinding, summary: ActivitySummary
    ) -> None:
        if self.history_store is None:
            return
        try:
            await self.history_store.upsert_match(
                MatchRecord.from_summary(binding, summary)
            )
        except Exception as e:
            logger.debug(
                "Failed to record match history",
                match_id=summary.activity_id,
                error=str(e),
            )

    def get_status(self) -> dict[str, Any]:
        """Get poller status for monitoring."""
        return {
            "running": self.is_running(),
            "cycle_in_flight": self._cycle_in_flight,
            "interval_seconds": self.config.interval_seconds,
            "concurrency": self.config.concurrency,
            "last_cycle": self.metrics.get_last_cycle(),
            "totals": self.metrics.get_global_summary(),
            "cache": self.origin_cache.cache.get_stats(),
            "destination_limiter": self.destination_limiter.get_stats(),
        }
