from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from domain.models import RoleRule
from domain.repositories import AuthorityCredentials

DEFAULT_DB_PATH = "linking.db"


@dataclass(frozen=True)
class Config:
    """
    Process-wide settings, read once at startup and never mutated.

    `userdata_auth` is the secret key for identity token derivation.
    """

    userdata_auth: str
    discord_token: str
    guild_id: int
    role_rules: Tuple[RoleRule, ...] = field(default_factory=tuple)
    log_webhook_url: Optional[str] = None
    database_url: Optional[str] = None
    db_path: str = DEFAULT_DB_PATH
    log_level: str = "INFO"

    @property
    def authority_credentials(self) -> AuthorityCredentials:
        return AuthorityCredentials(bot_token=self.discord_token, guild_id=self.guild_id)


def parse_role_rules(raw: Any) -> Tuple[RoleRule, ...]:
    """
    Build role rules from decoded JSON.

    Expects a list of objects with `name` and `role_id`, and optionally
    `attribute` and `threshold`.
    """

    if not isinstance(raw, list):
        raise ValueError("Role rules must be a JSON list.")

    rules: List[RoleRule] = []
    for entry in raw:
        if not isinstance(entry, dict) or "name" not in entry or "role_id" not in entry:
            raise ValueError(f"Invalid role rule: {entry!r}")
        attribute = entry.get("attribute")
        if attribute is not None and not isinstance(attribute, str):
            raise ValueError(f"Invalid role rule: {entry!r}")
        try:
            role_id = int(entry["role_id"])
        except (TypeError, ValueError):
            raise ValueError(f"Invalid role rule: {entry!r}") from None
        rules.append(
            RoleRule(
                name=str(entry["name"]),
                role_id=role_id,
                attribute=attribute,
                threshold=entry.get("threshold"),
            )
        )
    return tuple(rules)


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise RuntimeError(f"{name} environment variable is not set.")
    return value


def _load_role_rules(env: Mapping[str, str]) -> Tuple[RoleRule, ...]:
    inline = env.get("ROLE_RULES")
    if inline:
        return parse_role_rules(json.loads(inline))

    path = env.get("ROLE_RULES_FILE")
    if path:
        with open(path, encoding="utf-8") as fh:
            return parse_role_rules(json.load(fh))

    return ()


def load_config(env: Optional[Mapping[str, str]] = None) -> Config:
    """Read configuration from `env`, or from `.env` and the process environment."""

    if env is None:
        load_dotenv()
        env = os.environ

    guild_id = _require(env, "DISCORD_GUILD_ID")
    try:
        parsed_guild_id = int(guild_id)
    except ValueError:
        raise RuntimeError("DISCORD_GUILD_ID must be a numeric Discord ID.") from None

    return Config(
        userdata_auth=_require(env, "USERDATA_AUTH"),
        discord_token=_require(env, "DISCORD_TOKEN"),
        guild_id=parsed_guild_id,
        role_rules=_load_role_rules(env),
        log_webhook_url=env.get("LOG_WEBHOOK_URL") or None,
        database_url=env.get("DATABASE_URL") or None,
        db_path=env.get("DB_PATH", DEFAULT_DB_PATH),
        log_level=env.get("LOG_LEVEL", "INFO"),
    )
