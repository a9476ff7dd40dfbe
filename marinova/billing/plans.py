from __future__ import annotations

FREE_PLAN = "free"

# Paid tiers; "enterprise" is the institutional plan.
PAID_PLANS = ("retail_india", "international", "enterprise")

PLANS = (FREE_PLAN,) + PAID_PLANS


def is_valid_plan(plan: str | None) -> bool:
    return plan in PLANS


def is_paid_plan(plan: str | None) -> bool:
    return plan in PAID_PLANS
