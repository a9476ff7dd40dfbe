"""Create a user directly in the DB (skips the verification email).

Usage:
  python scripts/create_user.py --name "Alice" --email alice@gmail.com --password '...' --verified --plan international

NOTE: This is intended for local/dev and support work.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from marinova.auth.crud import create_user, public_user
from marinova.auth.security import new_verification_token
from marinova.billing.plans import PLANS, is_paid_plan
from marinova.config import load_config
from marinova.db import Store


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--verified", action="store_true", help="Mark the email as already verified")
    ap.add_argument("--plan", choices=list(PLANS), default="free")
    args = ap.parse_args()

    cfg = load_config()
    store = Store(cfg.DB_DSN).open()
    credits = cfg.PAID_USAGE_CREDITS if is_paid_plan(args.plan) else cfg.FREE_USAGE_CREDITS

    try:
        with store.session() as conn:
            row = create_user(
                conn,
                full_name=args.name,
                email=args.email,
                password=args.password,
                verification_token=None if args.verified else new_verification_token(),
                usage_credits=credits,
                is_email_verified=args.verified,
                subscription_status=args.plan,
            )
            u = public_user(row)
    finally:
        store.close()

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
