from __future__ import annotations

from typing import Any, Dict

from marinova.auth import crud
from marinova.config import Config
from marinova.db import Store
from marinova.errors import InvalidPlanError, NotFoundError

from .plans import FREE_PLAN, PLANS, is_paid_plan, is_valid_plan


def _debug(msg: str) -> None:
    print(f"[billing] {msg}")


class SubscriptionManager:
    """Moves users between tiers and resets their credit allocation.

    Credit rules per transition:
      - to any paid plan        -> PAID_USAGE_CREDITS (unlimited sentinel)
      - paid -> free (downgrade) -> 0; the free grant is once per account
      - free -> free             -> unchanged
    Re-applying the current plan writes nothing.
    """

    def __init__(self, cfg: Config, store: Store):
        self.cfg = cfg
        self.store = store

    def _target_credits(self, current_plan: str, current_credits: int, new_plan: str) -> int:
        if is_paid_plan(new_plan):
            return int(self.cfg.PAID_USAGE_CREDITS)
        if current_plan == FREE_PLAN:
            return current_credits
        return 0

    def update_subscription(self, user_id: int, plan: str | None) -> Dict[str, Any]:
        p = (plan or "").strip()
        if not is_valid_plan(p):
            raise InvalidPlanError(f"Invalid subscription plan. Expected one of: {', '.join(PLANS)}")

        with self.store.session() as conn:
            row = crud.get_user_by_id(conn, user_id)
            if row is None:
                raise NotFoundError()

            current_plan = str(row["subscription_status"] or FREE_PLAN)
            current_credits = int(row["usage_credits"] or 0)
            credits = self._target_credits(current_plan, current_credits, p)

            if current_plan == p and current_credits == credits:
                return crud.public_user(row)

            crud.update_user_subscription(
                conn,
                user_id=user_id,
                subscription_status=p,
                usage_credits=credits,
            )
            _debug(f"user_id={user_id} {current_plan} -> {p} (credits {current_credits} -> {credits})")
            return crud.public_user(crud.get_user_by_id(conn, user_id))
