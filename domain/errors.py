from __future__ import annotations


class LinkError(Exception):
    """
    Base class for failures reported back to the caller.

    `message` is always a static, caller-safe description. The original
    failure (if any) is kept as `__cause__` for logging and auditing only.
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InternalError(LinkError):
    status_code = 500


class BadRequest(LinkError):
    status_code = 400


# Collaborator failures. These never reach the caller unclassified.


class AccountNotFoundError(Exception):
    """No linked account exists for the given key."""


class DuplicateAccountError(Exception):
    """The token or Discord ID is already used by another linked account."""


class RoleSyncError(Exception):
    """The role authority failed to reconcile an account's roles."""
