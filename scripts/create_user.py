#!/usr/bin/env python3
"""Create a user directly in the directory, bypassing the HTTP signup switch.

Usage:
    DATABASE_URL=postgresql://... python scripts/create_user.py \
        --username alice --email alice@example.com --password s3cret!

    # Or via environment variables:
    SEED_USERNAME=alice SEED_EMAIL=alice@example.com SEED_PASSWORD=s3cret! \
        python scripts/create_user.py

Environment Variables:
    SEED_USERNAME, SEED_EMAIL, SEED_PASSWORD, SEED_NICKNAME: account fields
    DATABASE_URL: PostgreSQL connection string (optional, uses memory store if not set)
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


async def create_user(
    username: str,
    email: str,
    password: str,
    nickname: str | None = None,
    dry_run: bool = False,
) -> dict:
    """Validate and create one account.

    Returns:
        dict with user_id, username, email and status ('created', 'exists' or 'dry_run')
    """
    # Import here to avoid loading config before env vars are set
    from litesso.api.schemas import RegisterRequest
    from litesso.service.errors import UserExistsError
    from litesso.service.runtime import get_runtime

    body = RegisterRequest(username=username, email=email, password=password, nickname=nickname)
    runtime = get_runtime()

    if dry_run:
        taken = runtime.store.exists_by_username(body.username) or runtime.store.exists_by_email(
            body.email
        )
        status = "exists" if taken else "dry_run"
        print(f"[DRY RUN] {body.username}: {status}")
        return {"user_id": None, "username": body.username, "email": body.email, "status": status}

    try:
        user = await runtime.auth.register(body.username, body.email, body.password, body.nickname)
    except UserExistsError as exc:
        print(f"Not created: {exc.message}")
        return {"user_id": None, "username": body.username, "email": body.email, "status": "exists"}
    finally:
        await runtime.close()

    return {"user_id": user.id, "username": user.username, "email": user.email, "status": "created"}


def main():
    parser = argparse.ArgumentParser(
        description="Create a LiteSSO user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--username", default=os.environ.get("SEED_USERNAME"))
    parser.add_argument("--email", default=os.environ.get("SEED_EMAIL"))
    parser.add_argument("--password", default=os.environ.get("SEED_PASSWORD"))
    parser.add_argument("--nickname", default=os.environ.get("SEED_NICKNAME"))
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate input and report conflicts without writing",
    )

    args = parser.parse_args()

    for name in ("username", "email", "password"):
        if not getattr(args, name):
            print(f"Error: --{name} or SEED_{name.upper()} environment variable required")
            sys.exit(1)

    if not os.environ.get("DATABASE_URL"):
        os.environ["USE_MEMORY_STORE"] = "true"
        print("Note: Using in-memory store (set DATABASE_URL for persistence)")

    # Registration never touches the volatile store
    os.environ.setdefault("USE_MEMORY_CACHE", "true")

    try:
        result = asyncio.run(
            create_user(args.username, args.email, args.password, args.nickname, args.dry_run)
        )
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result["status"] == "created":
        print("\nUser created successfully!")
        print(f"  Username: {result['username']}")
        print(f"  Email: {result['email']}")
        print(f"  User ID: {result['user_id']}")
    elif result["status"] == "exists":
        sys.exit(2)


if __name__ == "__main__":
    main()
