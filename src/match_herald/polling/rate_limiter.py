"""
Rate limiters for Match Herald.

This module provides the fixed-window counters that throttle interactive
commands (per user and per guild) and outbound match posts (per destination
channel).
"""

import math
import time
from collections.abc import Callable
from typing import Any

import structlog

from ..config import RateLimitConfig

logger = structlog.get_logger(__name__)


class RateWindow:
    """Admission counter for one identifier within the current window."""

    __slots__ = ("count", "window_reset_at")

    def __init__(self, count: int, window_reset_at: float):
        self.count = count
        self.window_reset_at = window_reset_at


class RateLimitStatus:
    """Result of a rate limit check."""

    def __init__(self, admitted: bool, retry_after_seconds: int = 0):
        self.admitted = admitted
        self.retry_after_seconds = retry_after_seconds

    @property
    def limited(self) -> bool:
        return not self.admitted

    def __repr__(self) -> str:
        return (
            f"RateLimitStatus(admitted={self.admitted}, "
            f"retry_after_seconds={self.retry_after_seconds})"
        )


class RateLimiter:
    """
    Fixed-window counter keyed by an identifier.

    Admits at most ``limit`` operations per identifier per window. Up to
    twice the limit can pass across a window boundary; the limiter guards
    against abuse and is not meant for exact metering.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        name: str = "rate_limiter",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the rate limiter.

        Args:
            limit: Admissions allowed per window
            window_seconds: Window length in seconds
            name: Label used in log events
            clock: Monotonic time source
        """
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")

        self.limit = limit
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._next_sweep_at = clock() + window_seconds

    def check(self, identifier: str) -> RateLimitStatus:
        """
        Count one operation for ``identifier`` if the window allows it.

        Returns:
            Whether the operation was admitted and, if not, the seconds until
            the current window resets
        """
        now = self._clock()
        if now >= self._next_sweep_at:
            # Expired windows are dropped at most once per window length
            self.cleanup_expired()
            self._next_sweep_at = now + self.window_seconds

        window = self._windows.get(identifier)

        if window is None or now > window.window_reset_at:
            self._windows[identifier] = RateWindow(1, now + self.window_seconds)
            return RateLimitStatus(admitted=True)

        if window.count >= self.limit:
            retry_after = math.ceil(window.window_reset_at - now)
            return RateLimitStatus(admitted=False, retry_after_seconds=retry_after)

        window.count += 1
        return RateLimitStatus(admitted=True)

    def get_window(self, identifier: str) -> RateWindow | None:
        """Get the current window for ``identifier``, if any."""
        return self._windows.get(identifier)

    def reset(self, identifier: str) -> None:
        """Forget the window for ``identifier``."""
        self._windows.pop(identifier, None)

    def clear(self) -> None:
        """Forget all windows."""
        self._windows.clear()

    def cleanup_expired(self) -> int:
        """
        Drop windows whose reset time has passed.

        Returns:
            Number of windows removed
        """
        now = self._clock()
        expired = [
            identifier
            for identifier, window in self._windows.items()
            if now > window.window_reset_at
        ]
        for identifier in expired:
            del self._windows[identifier]
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        """Get limiter statistics."""
        now = self._clock()
        saturated = sum(
            1
            for w in self._windows.values()
            if now <= w.window_reset_at and w.count >= self.limit
        )
        return {
            "name": self.name,
            "limit": self.limit,
            "window_seconds": self.window_seconds,
            "tracked_identifiers": len(self._windows),
            "saturated_identifiers": saturated,
        }


class CommandLimitResult:
    """Outcome of the combined user and guild command check."""

    def __init__(
        self,
        limited: bool,
        message: str | None = None,
        retry_after_seconds: int = 0,
    ):
        self.limited = limited
        self.message = message
        self.retry_after_seconds = retry_after_seconds


class CommandRateLimiter:
    """
    Throttles interactive commands per user and per guild.

    A command is rejected when either the invoking user or the guild it was
    issued in is saturated. The user window is checked first, and a rejected
    user does not consume guild capacity.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.user_limiter = RateLimiter(
            config.user_limit, config.command_window_seconds, "command_user", clock
        )
        self.guild_limiter = RateLimiter(
            config.guild_limit, config.command_window_seconds, "command_guild", clock
        )

    def check_limits(self, user_id: str, guild_id: str | None) -> CommandLimitResult:
        """
        Check both user and guild limits.

        Args:
            user_id: Invoking user id
            guild_id: Guild id, or None for direct messages

        Returns:
            Whether the command is limited and the message to show the user
        """
        user_status = self.user_limiter.check(user_id)
        if user_status.limited:
            logger.debug(
                "User command rate limited",
                user_id=user_id,
                retry_after=user_status.retry_after_seconds,
            )
            return CommandLimitResult(
                limited=True,
                message=(
                    "You're using commands too quickly. "
                    f"Try again in {user_status.retry_after_seconds} seconds."
                ),
                retry_after_seconds=user_status.retry_after_seconds,
            )

        if guild_id:
            guild_status = self.guild_limiter.check(guild_id)
            if guild_status.limited:
                logger.debug(
                    "Guild command rate limited",
                    guild_id=guild_id,
                    retry_after=guild_status.retry_after_seconds,
                )
                return CommandLimitResult(
                    limited=True,
                    message=(
                        "This server is using commands too quickly. "
                        f"Try again in {guild_status.retry_after_seconds} seconds."
                    ),
                    retry_after_seconds=guild_status.retry_after_seconds,
                )

        return CommandLimitResult(limited=False)


class DestinationRateLimiter:
    """Caps match posts per destination channel within a short window."""

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limiter = RateLimiter(
            config.destination_limit,
            config.destination_window_seconds,
            "destination",
            clock,
        )

    def can_post(self, destination_id: str) -> bool:
        """Admit one post to ``destination_id`` if the window allows it."""
        return self.limiter.check(destination_id).admitted

    def get_stats(self) -> dict[str, Any]:
        return self.limiter.get_stats()

    def cleanup_expired(self) -> int:
        return self.limiter.cleanup_expired()
