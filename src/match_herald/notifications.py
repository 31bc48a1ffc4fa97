"""
Notification sinks for Match Herald.

This module renders match summaries into chat messages and delivers them to
a destination channel. Delivery failures are reported as a False return and
never raised to the poller.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from .models import ActivitySummary

logger = structlog.get_logger(__name__)

WIN_COLOR = 0x57F287
LOSS_COLOR = 0xED4245


class NotificationMessage:
    """A rendered message, shaped after a Discord embed."""

    def __init__(
        self,
        title: str,
        description: str,
        color: int,
        fields: list[tuple[str, str]] | None = None,
        footer: str | None = None,
    ):
        self.title = title
        self.description = description
        self.color = color
        self.fields = fields or []
        self.footer = footer
        self.timestamp = datetime.now(UTC)

    def to_payload(self) -> dict[str, Any]:
        """Get the JSON body for the chat platform's create-message call."""
        embed: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "color": self.color,
            "fields": [
                {"name": name, "value": value, "inline": True}
                for name, value in self.fields
            ],
            "timestamp": self.timestamp.isoformat(),
        }
        if self.footer:
            embed["footer"] = {"text": self.footer}
        return {"embeds": [embed]}

    def to_text(self) -> str:
        lines = [self.title, self.description]
        lines.extend(f"{name}: {value}" for name, value in self.fields)
        return "\n".join(lines)


def render_match_post(summary: ActivitySummary) -> NotificationMessage:
    """Render a finished match announcement."""
    who = summary.player
    if summary.display_name:
        who = f"{summary.display_name} ({summary.player})"

    fields = [
        ("Result", summary.outcome),
        ("Score", summary.score),
        ("Agent", summary.agent),
        ("K/D/A", summary.kda),
        ("Map", summary.map_name),
    ]
    if summary.standing_delta is not None:
        sign = "+" if summary.standing_delta >= 0 else ""
        fields.append(("RR", f"{sign}{summary.standing_delta}"))

    return NotificationMessage(
        title=f"{summary.outcome} on {summary.map_name}",
        description=f"**{who}** finished a {summary.mode} match",
        color=WIN_COLOR if summary.is_win else LOSS_COLOR,
        fields=fields,
        footer=f"Match {summary.activity_id}",
    )


class NotificationSink(ABC):
    """Destination for rendered match posts."""

    @abstractmethod
    async def send(self, destination_id: str, message: NotificationMessage) -> bool:
        """
        Deliver a message to a destination.

        Returns:
            True if the message went out
        """
        pass


class InMemoryNotificationSink(NotificationSink):
    """Collects messages instead of delivering them."""

    def __init__(self, failing_destinations: set[str] | None = None) -> None:
        self.sent: list[tuple[str, NotificationMessage]] = []
        self.failing_destinations = failing_destinations or set()

    async def send(self, destination_id: str, message: NotificationMessage) -> bool:
        if destination_id in self.failing_destinations:
            logger.warning("Simulated send failure", destination_id=destination_id)
            return False
        self.sent.append((destination_id, message))
        return True

    def sent_to(self, destination_id: str) -> list[NotificationMessage]:
        return [msg for dest, msg in self.sent if dest == destination_id]


class DiscordNotificationSink(NotificationSink):
    """Posts messages to Discord channels through the REST API."""

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://discord.com/api/v10",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
            headers={"Authorization": f"Bot {bot_token}"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, destination_id: str, message: NotificationMessage) -> bool:
        try:
            response = await self._client.post(
                f"/channels/{destination_id}/messages", json=message.to_payload()
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Failed to send match post",
                destination_id=destination_id,
                error=str(e),
            )
            return False

        if not response.is_success:
            logger.warning(
                "Chat platform rejected match post",
                destination_id=destination_id,
                status_code=response.status_code,
            )
            return False

        return True
