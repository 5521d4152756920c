from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import aiohttp
import discord

from domain.models import LogSeverity
from domain.repositories import AuditSink

logger = logging.getLogger(__name__)

# Discord rejects embed descriptions above this length.
MAX_DESCRIPTION_LENGTH = 4096

SEVERITY_COLOURS: Dict[LogSeverity, discord.Colour] = {
    LogSeverity.INFORMATIONAL: discord.Colour.blue(),
    LogSeverity.SUCCESSFUL: discord.Colour.green(),
    LogSeverity.FAILURE: discord.Colour.red(),
}

_LEVELS: Dict[LogSeverity, int] = {
    LogSeverity.INFORMATIONAL: logging.INFO,
    LogSeverity.SUCCESSFUL: logging.INFO,
    LogSeverity.FAILURE: logging.WARNING,
}


def build_embed(message: str, severity: LogSeverity) -> discord.Embed:
    if len(message) > MAX_DESCRIPTION_LENGTH:
        message = message[: MAX_DESCRIPTION_LENGTH - 3] + "..."
    return discord.Embed(
        title=severity.value,
        description=message,
        colour=SEVERITY_COLOURS[severity],
    )


class LoggingAuditLogger(AuditSink):
    """Audit sink that only writes to the standard logging module."""

    async def log(self, message: str, severity: LogSeverity) -> None:
        logger.log(_LEVELS[severity], "[%s] %s", severity.value, message)


class DiscordWebhookAuditLogger(AuditSink):
    """
    Posts audit entries to a Discord channel webhook.

    Delivery problems are logged locally and never raised, so a broken
    webhook cannot fail the operation being audited.
    """

    def __init__(self, webhook_url: str, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._webhook_url = webhook_url
        self._session = session

    async def _send(self, session: aiohttp.ClientSession, embed: discord.Embed) -> None:
        webhook = discord.Webhook.from_url(self._webhook_url, session=session)
        await webhook.send(embed=embed)

    async def log(self, message: str, severity: LogSeverity) -> None:
        embed = build_embed(message, severity)
        try:
            if self._session is not None:
                await self._send(self._session, embed)
            else:
                async with aiohttp.ClientSession() as session:
                    await self._send(session, embed)
        except (discord.DiscordException, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("Failed to deliver audit entry (%s): %s", severity.value, exc)
            logger.log(_LEVELS[severity], "[%s] %s", severity.value, message)
