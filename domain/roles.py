from __future__ import annotations

from typing import Iterable, List, Sequence

from .models import LinkedAccount, RoleRule


def earned_roles(account: LinkedAccount, rules: Sequence[RoleRule]) -> List[RoleRule]:
    """Return the rules the account's current progress satisfies, in rule order."""

    snapshot = account.snapshot()
    return [rule for rule in rules if rule.is_earned_by(snapshot)]


def new_roles(
    account: LinkedAccount,
    rules: Sequence[RoleRule],
    held_role_ids: Iterable[int],
) -> List[RoleRule]:
    """
    Return the earned rules whose role the member does not hold yet.

    A role listed by several rules is only reported once.
    """

    held = set(held_role_ids)
    gained: List[RoleRule] = []
    for rule in earned_roles(account, rules):
        if rule.role_id in held:
            continue
        held.add(rule.role_id)
        gained.append(rule)
    return gained
