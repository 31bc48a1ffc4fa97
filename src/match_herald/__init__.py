"""
Match Herald

Watches linked VALORANT players for newly finished matches and announces
them in each guild's match channel, with rate limiting on both commands and
outbound posts.
"""

__version__ = "0.1.0"

from .config import Settings
from .exceptions import MatchHeraldError
from .origin_client import OriginClient
from .polling.orchestrator import PollingOrchestrator

__all__ = [
    "Settings",
    "OriginClient",
    "PollingOrchestrator",
    "MatchHeraldError",
]
