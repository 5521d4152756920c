import unittest
from types import SimpleNamespace
from unittest import mock

import aiohttp
import discord

from domain.errors import RoleSyncError
from domain.models import LinkedAccount, LogSeverity, RoleRule
from domain.repositories import AuthorityCredentials
from infrastructure.discord.role_synchronizer import DiscordRoleSynchronizer
from infrastructure.discord.webhook_logger import (
    MAX_DESCRIPTION_LENGTH,
    DiscordWebhookAuditLogger,
    LoggingAuditLogger,
    build_embed,
)

RULES = (
    RoleRule(name="Linked", role_id=1),
    RoleRule(name="EarlyBird", role_id=2, attribute="beta_tester"),
    RoleRule(name="Veteran", role_id=3, attribute="level", threshold=10),
)


class FakeMember:
    def __init__(self, held_role_ids):
        self.roles = [SimpleNamespace(id=role_id) for role_id in held_role_ids]
        self.added = []
        self.reason = None

    async def add_roles(self, *roles, reason=None):
        self.added.extend(role.id for role in roles)
        self.reason = reason


class FakeGuild:
    def __init__(self, member):
        self.member = member
        self.requested = []

    async def fetch_member(self, member_id):
        self.requested.append(member_id)
        return self.member


class FakeClient:
    def __init__(self, guild, login_error=None):
        self.guild = guild
        self.login_error = login_error
        self.token = None
        self.closed = False

    async def login(self, token):
        if self.login_error is not None:
            raise self.login_error
        self.token = token

    async def fetch_guild(self, guild_id):
        self.guild_id = guild_id
        return self.guild

    async def close(self):
        self.closed = True


class DiscordRoleSynchronizerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.credentials = AuthorityCredentials(bot_token="bot-token", guild_id=42)
        self.account = LinkedAccount("t", 777, True, {"level": 12})

    async def test_grants_and_reports_only_new_roles(self):
        member = FakeMember(held_role_ids=[1])
        guild = FakeGuild(member)
        client = FakeClient(guild)
        synchronizer = DiscordRoleSynchronizer(RULES, client_factory=lambda: client)

        gained = await synchronizer.reconcile(self.account, self.credentials)

        self.assertEqual(gained, ["EarlyBird", "Veteran"])
        self.assertEqual(member.added, [2, 3])
        self.assertEqual(guild.requested, [777])
        self.assertEqual(client.token, "bot-token")
        self.assertEqual(client.guild_id, 42)
        self.assertTrue(client.closed)

    async def test_nothing_new_adds_no_roles(self):
        member = FakeMember(held_role_ids=[1, 2, 3])
        synchronizer = DiscordRoleSynchronizer(
            RULES, client_factory=lambda: FakeClient(FakeGuild(member))
        )

        self.assertEqual(await synchronizer.reconcile(self.account, self.credentials), [])
        self.assertEqual(member.added, [])

    async def test_discord_failures_become_role_sync_errors(self):
        client = FakeClient(FakeGuild(FakeMember([])), login_error=discord.LoginFailure("bad token"))
        synchronizer = DiscordRoleSynchronizer(RULES, client_factory=lambda: client)

        with self.assertRaises(RoleSyncError) as caught:
            await synchronizer.reconcile(self.account, self.credentials)

        self.assertIn("777", str(caught.exception))
        self.assertTrue(client.closed)


class AuditLoggerTests(unittest.IsolatedAsyncioTestCase):
    def test_embed_is_titled_and_truncated(self):
        embed = build_embed("x" * (MAX_DESCRIPTION_LENGTH + 10), LogSeverity.FAILURE)

        self.assertEqual(embed.title, "FAILURE")
        self.assertEqual(len(embed.description), MAX_DESCRIPTION_LENGTH)
        self.assertEqual(embed.colour, discord.Colour.red())

    async def test_invalid_webhook_url_never_raises(self):
        sink = DiscordWebhookAuditLogger("not-a-webhook-url")
        with self.assertLogs("infrastructure.discord.webhook_logger", level="WARNING"):
            await sink.log("user with ID 1 gained no roles", LogSeverity.INFORMATIONAL)

    async def test_transport_errors_never_raise(self):
        sink = DiscordWebhookAuditLogger("https://discord.com/api/webhooks/1/abc")
        failing_send = mock.AsyncMock(side_effect=aiohttp.ClientConnectionError("offline"))

        with mock.patch.object(sink, "_send", failing_send):
            with self.assertLogs("infrastructure.discord.webhook_logger", level="WARNING"):
                await sink.log("Error with a user", LogSeverity.FAILURE)

        failing_send.assert_awaited_once()

    async def test_delivers_embed_through_webhook(self):
        sink = DiscordWebhookAuditLogger("https://discord.com/api/webhooks/1/abc")
        send = mock.AsyncMock()

        with mock.patch.object(sink, "_send", send):
            await sink.log("created userdata for user of id '1'", LogSeverity.SUCCESSFUL)

        embed = send.await_args.args[1]
        self.assertEqual(embed.title, "SUCCESSFUL")
        self.assertEqual(embed.description, "created userdata for user of id '1'")

    async def test_logging_sink_writes_to_log(self):
        with self.assertLogs("infrastructure.discord.webhook_logger", level="INFO") as logs:
            await LoggingAuditLogger().log("hello", LogSeverity.SUCCESSFUL)
        self.assertIn("[SUCCESSFUL] hello", logs.output[0])


if __name__ == "__main__":
    unittest.main()
