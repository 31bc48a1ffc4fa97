"""
Main application entry point for Match Herald.

This module sets up the FastAPI application, configures logging, wires the
cache, limiters, stores and poller together, and runs the poller for the
lifetime of the process.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request

from . import __version__
from .config import Settings, get_settings
from .exceptions import MatchHeraldError, NotFoundError, TransientOriginError
from .notifications import (
    DiscordNotificationSink,
    InMemoryNotificationSink,
    NotificationSink,
)
from .origin_client import OriginClient
from .polling.cache import OriginCache, TTLCache
from .polling.orchestrator import PollingOrchestrator
from .polling.rate_limiter import CommandRateLimiter, DestinationRateLimiter
from .state.manager import StoreFactory, Stores

logger = structlog.get_logger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level), format="%(message)s"
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if settings.log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class Services:
    """
    Process-wide service objects.

    The cache and limiters are shared between the poller and the interactive
    command path, and live as long as the process.
    """

    def __init__(
        self,
        settings: Settings,
        stores: Stores | None = None,
        notification_sink: NotificationSink | None = None,
        origin_client: OriginClient | None = None,
    ) -> None:
        self.settings = settings
        cache_config = settings.cache_config
        rate_config = settings.rate_limit_config

        self.cache = TTLCache(max_entries=cache_config.max_entries)
        self.origin_cache = OriginCache(
            self.cache,
            account_ttl=cache_config.account_ttl,
            standing_ttl=cache_config.standing_ttl,
            matches_ttl=cache_config.matches_ttl,
            match_ttl=cache_config.match_ttl,
        )
        self.command_limiter = CommandRateLimiter(rate_config)
        self.destination_limiter = DestinationRateLimiter(rate_config)

        self.origin_client = origin_client or OriginClient(settings.origin_config)
        self.stores = stores or StoreFactory.create_stores(settings.storage_backend)
        self.notification_sink = notification_sink or self._create_sink(settings)

        self.poller = PollingOrchestrator(
            origin_client=self.origin_client,
            origin_cache=self.origin_cache,
            binding_store=self.stores.bindings,
            state_store=self.stores.state,
            notification_sink=self.notification_sink,
            destination_limiter=self.destination_limiter,
            config=settings.polling_config,
            history_store=self.stores.history,
        )

    @staticmethod
    def _create_sink(settings: Settings) -> NotificationSink:
        if settings.discord_bot_token:
            return DiscordNotificationSink(
                settings.discord_bot_token, api_url=settings.discord_api_url
            )
        logger.warning(
            "DISCORD_BOT_TOKEN not set, match posts will be kept in memory"
        )
        return InMemoryNotificationSink()

    async def close(self) -> None:
        await self.poller.stop()
        await self.origin_client.close()
        if isinstance(self.notification_sink, DiscordNotificationSink):
            await self.notification_sink.close()


def _check_command(services: Services, user_id: str, guild_id: str | None) -> None:
    """Reject an interactive lookup when the user or guild is saturated."""
    result = services.command_limiter.check_limits(user_id, guild_id)
    if result.limited:
        raise HTTPException(
            status_code=429,
            detail=result.message,
            headers={"Retry-After": str(result.retry_after_seconds)},
        )


def _lookup_error(e: MatchHeraldError) -> HTTPException:
    """Map a provider failure onto an HTTP error for the caller."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail="Player or match not found")
    if isinstance(e, TransientOriginError):
        return HTTPException(
            status_code=503, detail="Match provider unavailable, try again later"
        )
    return HTTPException(status_code=502, detail=str(e))


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application."""
    app_settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        setup_logging(app_settings)
        logger = structlog.get_logger()

        logger.info("Starting Match Herald")
        logger.info(
            "Configuration loaded",
            poll_interval_seconds=app_settings.poll_interval_seconds,
            poll_concurrency=app_settings.poll_concurrency,
            storage_backend=app_settings.storage_backend,
            debug=app_settings.debug,
        )

        services = Services(app_settings)
        app.state.services = services

        if app_settings.polling_config.enabled:
            await services.poller.start()
        else:
            logger.info("Match poller disabled")

        yield

        logger.info("Shutting down Match Herald")
        await services.close()

    app = FastAPI(
        title="Match Herald",
        description="Announces newly finished matches for linked players",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Match Herald", "version": __version__, "status": "active"}

    @app.get("/health")
    async def health_check(request: Request) -> dict[str, str]:
        """Health check endpoint."""
        services: Services = request.app.state.services
        healthy = await services.stores.state.health_check()
        return {"status": "healthy" if healthy else "degraded"}

    @app.get("/status")
    async def status(request: Request) -> dict[str, Any]:
        """Poller, cache and limiter status."""
        services: Services = request.app.state.services
        return {
            "poller": services.poller.get_status(),
            "cache_entries": services.cache.stats()["size"],
            "command_limiter": {
                "user": services.command_limiter.user_limiter.get_stats(),
                "guild": services.command_limiter.guild_limiter.get_stats(),
            },
        }

    @app.get("/players/{region}/{name}/{tag}")
    async def player_lookup(
        request: Request,
        region: str,
        name: str,
        tag: str,
        user_id: str,
        guild_id: str | None = None,
    ) -> dict[str, Any]:
        """Account and rank standing for a player, served from the cache."""
        services: Services = request.app.state.services
        _check_command(services, user_id, guild_id)
        try:
            account = await services.origin_cache.get_account(
                services.origin_client, name, tag
            )
            standing = await services.origin_cache.get_standing(
                services.origin_client, region, name, tag
            )
        except MatchHeraldError as e:
            logger.info("Player lookup failed", player=f"{name}#{tag}", error=str(e))
            raise _lookup_error(e) from e
        return {"player": f"{name}#{tag}", "account": account, "standing": standing}

    @app.get("/matches/{region}/{match_id}")
    async def match_lookup(
        request: Request,
        region: str,
        match_id: str,
        user_id: str,
        guild_id: str | None = None,
    ) -> dict[str, Any]:
        """A single match, served from the cache."""
        services: Services = request.app.state.services
        _check_command(services, user_id, guild_id)
        try:
            return await services.origin_cache.get_match(
                services.origin_client, region, match_id
            )
        except MatchHeraldError as e:
            logger.info("Match lookup failed", match_id=match_id, error=str(e))
            raise _lookup_error(e) from e

    return app


def main() -> None:
    """Main entry point."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    logger = structlog.get_logger()

    logger.info(
        "Starting server", host=settings.host, port=settings.port, debug=settings.debug
    )

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,  # We handle logging ourselves
    )


if __name__ == "__main__":
    main()
