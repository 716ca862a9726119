"""
Plan limits for crawl pages, export rows and discovery cities.

`enforce` is the single entry point and never raises: a request beyond
the plan comes back as a gated result with the amount that may actually
be used, a reason and an upgrade hint.
"""
from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional


class Plan(str, Enum):
    DEMO = "demo"
    STARTER = "starter"
    PRO = "pro"


class ActionType(str, Enum):
    CRAWL = "crawl"
    EXPORT = "export"
    DISCOVER = "discover"


# None means unlimited
PLAN_LIMITS: dict[Plan, dict[ActionType, Optional[int]]] = {
    Plan.DEMO: {ActionType.CRAWL: 3, ActionType.EXPORT: 50, ActionType.DISCOVER: 1},
    Plan.STARTER: {ActionType.CRAWL: 15, ActionType.EXPORT: 500, ActionType.DISCOVER: 5},
    Plan.PRO: {ActionType.CRAWL: None, ActionType.EXPORT: None, ActionType.DISCOVER: None},
}

NEXT_PLAN = {Plan.DEMO: Plan.STARTER, Plan.STARTER: Plan.PRO}

_UNITS = {
    ActionType.CRAWL: ("pages per website", "crawl more pages per website"),
    ActionType.EXPORT: ("rows per export", "export more rows"),
    ActionType.DISCOVER: ("cities per dataset", "discover businesses in more cities"),
}


@dataclass
class EnforcementResult:
    allowed: bool
    limit: Optional[int]
    actual: int
    gated: bool
    reason: Optional[str] = None
    upgrade_hint: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _coerce(enum_cls, value):
    try:
        return enum_cls(value.value if isinstance(value, Enum) else str(value).lower())
    except ValueError:
        return None


def plan_limit(plan, action) -> Optional[int]:
    """Limit for `action` on `plan`; None when unlimited. Unknown plan/action gives 0."""
    p = _coerce(Plan, plan)
    a = _coerce(ActionType, action)
    if p is None or a is None:
        return 0
    return PLAN_LIMITS[p][a]


def upgrade_hint(plan: Plan, action: ActionType) -> Optional[str]:
    nxt = NEXT_PLAN.get(plan)
    if nxt is None:
        return None
    return f"Upgrade to {nxt.value.capitalize()} plan to {_UNITS[action][1]}."


def enforce(plan, action_type, requested_amount: int, is_internal_user: bool = False) -> EnforcementResult:
    requested = max(0, int(requested_amount or 0))

    if is_internal_user:
        return EnforcementResult(allowed=True, limit=None, actual=requested, gated=False)

    p = _coerce(Plan, plan)
    a = _coerce(ActionType, action_type)
    if p is None:
        return EnforcementResult(allowed=False, limit=0, actual=0, gated=True,
                                 reason=f"Unknown plan: {plan}")
    if a is None:
        return EnforcementResult(allowed=False, limit=0, actual=0, gated=True,
                                 reason=f"Unknown action: {action_type}")

    limit = PLAN_LIMITS[p][a]
    if limit is None or requested <= limit:
        return EnforcementResult(allowed=True, limit=limit, actual=requested, gated=False)

    return EnforcementResult(
        allowed=False,
        limit=limit,
        actual=limit,
        gated=True,
        reason=(f"{p.value.capitalize()} plan allows up to {limit} {_UNITS[a][0]}. "
                f"Requested {requested}."),
        upgrade_hint=upgrade_hint(p, a),
    )
