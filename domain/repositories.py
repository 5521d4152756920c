from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from .models import LinkedAccount, LogSeverity, ProgressValue


class AccountRepository(Protocol):
    """
    Abstraction over linked account persistence, bound to one storage handle.

    Implementations are responsible for:
    - Mapping between database rows and the `LinkedAccount` domain model.
    - Hiding any SQL / driver details from the application layer.
    - Enforcing uniqueness of both the token and the Discord ID.
    """

    def fetch_by_token(self, token: str) -> Optional[LinkedAccount]:
        """Return the account with the given identity token, or None if not found."""

        ...

    def fetch_by_external_id(self, discord_id: int) -> Optional[LinkedAccount]:
        """Return the account linked to the given Discord ID, or None if not found."""

        ...

    def create(
        self,
        token: str,
        discord_id: int,
        beta_tester: bool,
        progress: Dict[str, ProgressValue],
    ) -> LinkedAccount:
        """
        Persist a new linked account and return it.

        Raises `DuplicateAccountError` if the token or Discord ID is taken.
        """

        ...

    def update(
        self,
        token: str,
        beta_tester: bool,
        progress: Dict[str, ProgressValue],
    ) -> LinkedAccount:
        """
        Replace the progress and channel flag of an existing account.

        Raises `AccountNotFoundError` if no account has this token.
        """

        ...

    def close(self) -> None:
        """Release the underlying storage handle."""

        ...


class AccountStorage(Protocol):
    """Hands out storage handles (one connection each) for a single request."""

    def acquire(self) -> AccountRepository:
        ...


@dataclass(frozen=True)
class AuthorityCredentials:
    """Credentials for the Discord bot that manages guild roles."""

    bot_token: str
    guild_id: int


class RoleAuthority(Protocol):
    """External authority that grants roles based on account progress."""

    async def reconcile(
        self,
        account: LinkedAccount,
        credentials: AuthorityCredentials,
    ) -> List[str]:
        """
        Grant whatever roles the account newly earned and return their names.

        An empty list means nothing new was earned. Failures are raised as
        `RoleSyncError`.
        """

        ...


class AuditSink(Protocol):
    """Fire-and-forget destination for operational and security events."""

    async def log(self, message: str, severity: LogSeverity) -> None:
        """Record a message. Must never raise."""

        ...
