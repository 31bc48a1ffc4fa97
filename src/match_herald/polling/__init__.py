"""
Polling system for Match Herald.

This package contains the cache, rate limiters and orchestrator that scan
linked players for new matches and announce them.
"""

from .cache import OriginCache, TTLCache
from .orchestrator import PollingOrchestrator
from .rate_limiter import CommandRateLimiter, DestinationRateLimiter, RateLimiter

__all__ = [
    "PollingOrchestrator",
    "TTLCache",
    "OriginCache",
    "RateLimiter",
    "CommandRateLimiter",
    "DestinationRateLimiter",
]
