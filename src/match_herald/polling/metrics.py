"""
Metrics collection and monitoring for the polling system.

This module tracks what each polling cycle did (baselines written, posts
sent or dropped, failures) and keeps a short history for the status endpoint.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class PollingCycleMetrics:
    """Metrics for a single polling cycle."""

    cycle_id: str
    start_time: datetime
    end_time: datetime | None = None
    groups_processed: int = 0
    bindings_checked: int = 0
    baselines_recorded: int = 0
    unchanged: int = 0
    notifications_sent: int = 0
    notifications_dropped: int = 0
    notifications_failed: int = 0
    bindings_skipped: int = 0
    not_found: int = 0
    aborted: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get cycle duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "groups_processed": self.groups_processed,
            "bindings_checked": self.bindings_checked,
            "baselines_recorded": self.baselines_recorded,
            "unchanged": self.unchanged,
            "notifications_sent": self.notifications_sent,
            "notifications_dropped": self.notifications_dropped,
            "notifications_failed": self.notifications_failed,
            "bindings_skipped": self.bindings_skipped,
            "not_found": self.not_found,
            "aborted": self.aborted,
            "errors": len(self.errors),
        }


class MetricsCollector:
    """
    Central metrics collector for the polling system.

    This class collects, aggregates, and provides access to all
    polling-related metrics.
    """

    def __init__(self, max_history: int = 50) -> None:
        self.start_time = datetime.now()
        self.cycle_history: deque[PollingCycleMetrics] = deque(maxlen=max_history)
        self.current_cycle: PollingCycleMetrics | None = None

        # Global counters
        self.total_cycles = 0
        self.skipped_cycles = 0
        self.aborted_cycles = 0
        self.total_notifications_sent = 0
        self.total_notifications_dropped = 0
        self.total_notifications_failed = 0
        self.total_baselines = 0
        self.total_errors = 0

    def start_cycle(self, cycle_id: str) -> PollingCycleMetrics:
        """Start a new polling cycle."""
        self.current_cycle = PollingCycleMetrics(
            cycle_id=cycle_id, start_time=datetime.now()
        )

        logger.debug("Started metrics collection for cycle", cycle_id=cycle_id)
        return self.current_cycle

    def end_cycle(self) -> PollingCycleMetrics | None:
        """End the current polling cycle."""
        if not self.current_cycle:
            return None

        cycle = self.current_cycle
        cycle.end_time = datetime.now()

        self.total_cycles += 1
        if cycle.aborted:
            self.aborted_cycles += 1
        self.total_notifications_sent += cycle.notifications_sent
        self.total_notifications_dropped += cycle.notifications_dropped
        self.total_notifications_failed += cycle.notifications_failed
        self.total_baselines += cycle.baselines_recorded
        self.total_errors += len(cycle.errors)

        self.cycle_history.append(cycle)
        self.current_cycle = None

        logger.debug(
            "Completed metrics collection for cycle",
            cycle_id=cycle.cycle_id,
            duration=cycle.duration_seconds,
            bindings=cycle.bindings_checked,
            sent=cycle.notifications_sent,
        )

        return cycle

    def record_skipped_cycle(self) -> None:
        """Record a timer tick that found a cycle still running."""
        self.skipped_cycles += 1

    def get_last_cycle(self) -> dict[str, Any] | None:
        if not self.cycle_history:
            return None
        return self.cycle_history[-1].to_dict()

    def get_global_summary(self) -> dict[str, Any]:
        """Get global polling metrics summary."""
        uptime_seconds = (datetime.now() - self.start_time).total_seconds()
        durations = [cycle.duration_seconds for cycle in self.cycle_history]

        return {
            "uptime_seconds": uptime_seconds,
            "total_cycles": self.total_cycles,
            "skipped_cycles": self.skipped_cycles,
            "aborted_cycles": self.aborted_cycles,
            "total_notifications_sent": self.total_notifications_sent,
            "total_notifications_dropped": self.total_notifications_dropped,
            "total_notifications_failed": self.total_notifications_failed,
            "total_baselines": self.total_baselines,
            "total_errors": self.total_errors,
            "avg_cycle_time": sum(durations) / len(durations) if durations else 0,
            "cycle_in_progress": self.current_cycle is not None,
        }
