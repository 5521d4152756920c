from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

ProgressValue = Union[str, int, float, bool]


@dataclass
class LinkedAccount:
    """
    A game account linked to a Discord user.

    `token` is the derived identity token and the primary key; `discord_id`
    is the secondary unique key. Both are unique across all accounts.
    """

    token: str
    discord_id: int
    beta_tester: bool
    progress: Dict[str, ProgressValue] = field(default_factory=dict)

    def snapshot(self) -> Dict[str, Any]:
        """Progress attributes plus the distribution channel flag."""

        values: Dict[str, Any] = dict(self.progress)
        values["beta_tester"] = self.beta_tester
        return values


@dataclass(frozen=True)
class RoleRule:
    """
    A Discord role unlocked by account progress.

    - No `attribute`: baseline role, earned by every linked account.
    - Numeric `threshold`: earned when the attribute is >= threshold.
    - Other `threshold`: earned when the attribute equals it.
    - No `threshold`: earned when the attribute is truthy.
    """

    name: str
    role_id: int
    attribute: Optional[str] = None
    threshold: Optional[ProgressValue] = None

    def is_earned_by(self, snapshot: Dict[str, Any]) -> bool:
        if self.attribute is None:
            return True

        value = snapshot.get(self.attribute)
        if value is None:
            return False
        if self.threshold is None:
            return bool(value)
        if _is_number(self.threshold) and _is_number(value):
            return value >= self.threshold
        return value == self.threshold


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class RoleGrant:
    """Roles newly granted to an account by one synchronization call."""

    discord_id: int
    role_names: List[str] = field(default_factory=list)


class LogSeverity(str, Enum):
    INFORMATIONAL = "INFORMATIONAL"
    SUCCESSFUL = "SUCCESSFUL"
    FAILURE = "FAILURE"
