from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from application.failures import classify, guard
from config import Config
from domain.errors import (
    AccountNotFoundError,
    BadRequest,
    DuplicateAccountError,
    InternalError,
)
from domain.models import LinkedAccount, LogSeverity, ProgressValue, RoleGrant
from domain.repositories import AccountRepository, AccountStorage, AuditSink, RoleAuthority
from domain.tokens import derive_keyed_token, derive_legacy_token

logger = logging.getLogger(__name__)

BETA_CHANNEL = "Beta"

MSG_STORAGE_UNAVAILABLE = "request failed at creating database client, please try again"
MSG_NOT_LINKED = "Failed at retrieving existing data, you may not have your account linked yet"
MSG_UPDATE_FAILED = "The request has unfortunately failed the update"
MSG_CREATE_FAILED = "The request has unfortunately failed at creating your account"
MSG_ROLES_FAILED = "The role-handling process has failed"
MSG_DELETE_FAILED = "Failed at deleting userdata, this token may not be valid"
MSG_TOKEN_BOUND = "This account is already bound to another discord id"
MSG_ALREADY_LINKED = "You're already linked, please use the update endpoint"
MSG_DISCORD_ID_BOUND = "This discord id is already bound to another account"


@dataclass
class KeyedCredentials:
    """Email + bearer token pair taken from the Authorization header."""

    email: str
    token: str


@dataclass
class OGUpdateRequest:
    """Body of the legacy update call."""

    player_token: str
    beta_tester: bool = False
    progress: Dict[str, ProgressValue] = field(default_factory=dict)


@dataclass
class CreateRequest:
    """
    Body of the create call.

    `progress` is None when the client sent no payload, in which case the
    default progress is stored and roles are synchronized right away.
    """

    discord_id: int
    progress: Optional[Dict[str, ProgressValue]] = None


@dataclass
class MessageResponse:
    message: str


CreateResult = Union[MessageResponse, LinkedAccount]


def default_progress() -> Dict[str, ProgressValue]:
    return {}


def is_beta_channel(channel: Optional[str]) -> bool:
    return channel == BETA_CHANNEL


def format_roles_message(gained_roles: List[str]) -> str:
    """Caller-facing summary of a role synchronization."""

    if not gained_roles:
        return (
            "The request was successful, but you've already gained all of the "
            "possible roles with your current progress"
        )
    return (
        "The request was successful, you've gained the following roles: "
        f"{', '.join(gained_roles)}"
    )


def format_roles_log(grant: RoleGrant) -> str:
    """Audit line for a role synchronization, keyed by Discord ID."""

    if not grant.role_names:
        return f"user with ID {grant.discord_id} had a successful request but gained no roles"
    return (
        f"user with ID {grant.discord_id} gained the following roles: "
        f"{', '.join(grant.role_names)}"
    )


def _require(account: Optional[LinkedAccount], token: str) -> LinkedAccount:
    if account is None:
        raise AccountNotFoundError(f"no linked account for token {token}")
    return account


class LinkingWorkflow:
    """
    Account linking and role synchronization.

    Every operation follows the same chain: acquire a storage handle,
    derive the identity token, read/mutate the account, synchronize roles,
    audit, respond. The chain stops at the first failure, which is
    classified, audited and raised as a `LinkError`.
    """

    def __init__(
        self,
        config: Config,
        authority: RoleAuthority,
        audit_sink: AuditSink,
    ) -> None:
        self._config = config
        self._authority = authority
        self._audit = audit_sink

    def keyed_token(self, credentials: KeyedCredentials) -> str:
        return derive_keyed_token(credentials.email, credentials.token, self._config.userdata_auth)

    def legacy_token(self, player_id: str, player_token: str) -> str:
        return derive_legacy_token(player_id, player_token, self._config.userdata_auth)

    async def og_update(
        self,
        player_id: str,
        request: OGUpdateRequest,
        storage: AccountStorage,
    ) -> MessageResponse:
        logger.debug("og update for player %s", player_id)
        repo = await self._acquire(storage)
        try:
            token = self.legacy_token(player_id, request.player_token)
            updated = await self._update_existing(repo, token, request.beta_tester, request.progress)
            return await self._synchronize(updated, token)
        finally:
            repo.close()

    async def update(
        self,
        credentials: KeyedCredentials,
        channel: Optional[str],
        progress: Dict[str, ProgressValue],
        storage: AccountStorage,
    ) -> MessageResponse:
        repo = await self._acquire(storage)
        try:
            token = self.keyed_token(credentials)
            updated = await self._update_existing(repo, token, is_beta_channel(channel), progress)
            return await self._synchronize(updated, token)
        finally:
            repo.close()

    # TODO: verify that the Discord ID belongs to the caller before linking it
    async def create(
        self,
        credentials: KeyedCredentials,
        channel: Optional[str],
        request: CreateRequest,
        storage: AccountStorage,
    ) -> CreateResult:
        uses_default_progress = request.progress is None
        progress = default_progress() if uses_default_progress else dict(request.progress)

        repo = await self._acquire(storage)
        try:
            token = self.keyed_token(credentials)

            async with guard(self._audit, InternalError(MSG_CREATE_FAILED), token):
                existing = await asyncio.to_thread(repo.fetch_by_token, token)
                if existing is not None:
                    if existing.discord_id != request.discord_id:
                        raise BadRequest(MSG_TOKEN_BOUND)
                    raise InternalError(MSG_ALREADY_LINKED)

                bound = await asyncio.to_thread(repo.fetch_by_external_id, request.discord_id)
                if bound is not None:
                    raise BadRequest(MSG_DISCORD_ID_BOUND)

                try:
                    created = await asyncio.to_thread(
                        repo.create,
                        token,
                        request.discord_id,
                        is_beta_channel(channel),
                        progress,
                    )
                except DuplicateAccountError as exc:
                    # Lost a race against a concurrent create.
                    raise classify(exc, BadRequest(MSG_DISCORD_ID_BOUND))

            if uses_default_progress:
                return await self._synchronize(created, token)

            await self._audit.log(
                f"created userdata for user of id '{created.discord_id}'",
                LogSeverity.SUCCESSFUL,
            )
            return created
        finally:
            repo.close()

    async def delete(self, credentials: KeyedCredentials, storage: AccountStorage) -> None:
        """
        Verify that the account exists. Nothing is removed.
        """

        repo = await self._acquire(storage)
        try:
            token = self.keyed_token(credentials)
            # TODO: remove the account once the store supports deletion
            async with guard(self._audit, InternalError(MSG_DELETE_FAILED), token):
                _require(await asyncio.to_thread(repo.fetch_by_token, token), token)
        finally:
            repo.close()

    async def _acquire(self, storage: AccountStorage) -> AccountRepository:
        async with guard(self._audit, InternalError(MSG_STORAGE_UNAVAILABLE)):
            return await asyncio.to_thread(storage.acquire)

    async def _update_existing(
        self,
        repo: AccountRepository,
        token: str,
        beta_tester: bool,
        progress: Dict[str, ProgressValue],
    ) -> LinkedAccount:
        async with guard(self._audit, InternalError(MSG_NOT_LINKED), token):
            _require(await asyncio.to_thread(repo.fetch_by_token, token), token)

        async with guard(self._audit, InternalError(MSG_UPDATE_FAILED), token):
            return await asyncio.to_thread(repo.update, token, beta_tester, dict(progress))

    async def _synchronize(self, account: LinkedAccount, token: str) -> MessageResponse:
        async with guard(self._audit, InternalError(MSG_ROLES_FAILED), token):
            gained_roles = await self._authority.reconcile(
                account, self._config.authority_credentials
            )
        grant = RoleGrant(discord_id=account.discord_id, role_names=list(gained_roles))

        await self._audit.log(format_roles_log(grant), LogSeverity.INFORMATIONAL)
        return MessageResponse(message=format_roles_message(grant.role_names))
