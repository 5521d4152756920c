from __future__ import annotations

import logging
from typing import Callable, List, Sequence

import discord

from domain.errors import RoleSyncError
from domain.models import LinkedAccount, RoleRule
from domain.repositories import AuthorityCredentials, RoleAuthority
from domain.roles import new_roles

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], discord.Client]


def _default_client() -> discord.Client:
    # REST only; no gateway connection is opened.
    return discord.Client(intents=discord.Intents.none())


class DiscordRoleSynchronizer(RoleAuthority):
    """
    Grants guild roles unlocked by an account's progress.

    Each call logs the bot in over HTTP, fetches the guild member, adds the
    roles the member earned but does not hold yet, and reports their names
    in rule order.
    """

    def __init__(
        self,
        rules: Sequence[RoleRule],
        client_factory: ClientFactory = _default_client,
    ) -> None:
        self._rules = tuple(rules)
        self._client_factory = client_factory

    async def reconcile(
        self,
        account: LinkedAccount,
        credentials: AuthorityCredentials,
    ) -> List[str]:
        client = self._client_factory()
        try:
            await client.login(credentials.bot_token)
            guild = await client.fetch_guild(credentials.guild_id)
            member = await guild.fetch_member(account.discord_id)

            gained = new_roles(account, self._rules, (role.id for role in member.roles))
            if gained:
                await member.add_roles(
                    *(discord.Object(id=rule.role_id) for rule in gained),
                    reason="Progress update",
                )
        except discord.DiscordException as exc:
            raise RoleSyncError(
                f"role sync failed for discord id {account.discord_id}: {exc}"
            ) from exc
        finally:
            await client.close()

        names = [rule.name for rule in gained]
        logger.info("Granted %d role(s) to %s", len(names), account.discord_id)
        return names
