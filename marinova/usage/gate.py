"""Feature-access decisions and credit accounting.

`UsageGate.track` is the single authority for "may this user invoke feature X
now". Decision order:

1. email must be verified (any tier, any feature)
2. restricted features need a paid plan, no credit is charged on refusal
3. free tier spends one credit via a conditional UPDATE (never below zero)
4. paid tiers are unlimited

Allowed calls append one usage_history row. The decrement and the history
row commit in the same transaction, so a failed write leaves both untouched.
Callers must treat `track` as at-most-once and never retry it automatically.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from marinova.auth import crud
from marinova.billing.plans import FREE_PLAN
from marinova.db import Store
from marinova.errors import (
    EmailNotVerifiedError,
    NotFoundError,
    SubscriptionRequiredError,
    ValidationError,
)
from marinova.util.time import utcnow_iso


# Unavailable on the free tier regardless of remaining credits.
RESTRICTED_FEATURES = frozenset({"chat", "report"})


def _debug(msg: str) -> None:
    print(f"[usage] {msg}")


def is_restricted(feature: str) -> bool:
    return feature in RESTRICTED_FEATURES


@dataclass(frozen=True)
class TrackResult:
    accepted: bool
    remaining: int
    subscription_status: str
    reason: Optional[str] = None


class UsageGate:
    def __init__(self, store: Store):
        self.store = store

    def track(self, user_id: int, feature: str) -> TrackResult:
        f = (feature or "").strip()
        if not f:
            raise ValidationError("Feature name is required")

        with self.store.session() as conn:
            row = crud.get_user_by_id(conn, user_id)
            if row is None:
                raise NotFoundError()

            if int(row["is_email_verified"] or 0) != 1:
                _debug(f"user_id={user_id} feature={f}: email not verified")
                raise EmailNotVerifiedError()

            plan = str(row["subscription_status"] or FREE_PLAN)
            if plan == FREE_PLAN:
                if is_restricted(f):
                    _debug(f"user_id={user_id} feature={f}: restricted on free tier")
                    raise SubscriptionRequiredError()

                remaining = crud.consume_credit(conn, user_id)
                if remaining is None:
                    _debug(f"user_id={user_id} feature={f}: out of credits")
                    raise SubscriptionRequiredError(
                        "You have used all your free credits. Please subscribe to continue.",
                        usageCredits=0,
                    )
            else:
                remaining = int(row["usage_credits"] or 0)

            crud.append_usage(conn, user_id, f, utcnow_iso())

        return TrackResult(accepted=True, remaining=remaining, subscription_status=plan)
