from __future__ import annotations

import hashlib
import hmac
from typing import Union

Credential = Union[str, bytes]


def _as_bytes(value: Credential) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def derive_token(
    primary: Credential,
    secondary: Credential,
    secret_key: Credential,
) -> str:
    """
    Derive the identity token for a pair of credentials.

    HMAC-SHA1 over `primary || secondary` keyed with `secret_key`, rendered
    as 40 lowercase hex characters. Pure and deterministic.
    """

    mac = hmac.new(_as_bytes(secret_key), digestmod=hashlib.sha1)
    mac.update(_as_bytes(primary))
    mac.update(_as_bytes(secondary))
    return mac.hexdigest()


def derive_keyed_token(email: Credential, token: Credential, secret_key: Credential) -> str:
    """Token for the email + bearer token flow."""

    return derive_token(email, token, secret_key)


def derive_legacy_token(
    player_id: Credential,
    player_token: Credential,
    secret_key: Credential,
) -> str:
    """Token for the legacy player ID + player token flow."""

    return derive_token(player_id, player_token, secret_key)
