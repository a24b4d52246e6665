#!/usr/bin/env python3
"""
Campus Portal - management commands

Usage:
    campus-portal serve                      # Run the API with uvicorn
    campus-portal init-db                    # Create all tables
    campus-portal create-user EMAIL PASSWORD --role admin
    campus-portal reconcile                  # One overdue reconciliation pass

Admin accounts cannot self-register; provision them here.
"""

import argparse
import asyncio
import sys
from typing import Optional, List

from sqlalchemy import select

from campus_portal.core.config import settings
from campus_portal.core.database import get_session_local, init_db, close_db
from campus_portal.core.logging_config import logger
from campus_portal.core.security import get_password_hash
from campus_portal.models.user import User, UserRole


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the management CLI"""
    parser = argparse.ArgumentParser(
        prog="campus-portal",
        description="Campus Portal management commands",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default=settings.SERVER_HOST)
    serve.add_argument("--port", type=int, default=settings.SERVER_PORT)
    serve.add_argument("--reload", action="store_true", default=False)

    subparsers.add_parser("init-db", help="Create database tables")

    user = subparsers.add_parser("create-user", help="Create or update a user account")
    user.add_argument("email")
    user.add_argument("password")
    user.add_argument("--name", dest="full_name", default=None)
    user.add_argument(
        "--role",
        choices=[r.value for r in UserRole],
        default=UserRole.ADMIN.value,
    )
    user.add_argument("--department", default=None)

    subparsers.add_parser("reconcile", help="Persist overdue borrow records and fees once")

    return parser


async def create_user(email: str, password: str, role: str,
                      full_name: Optional[str] = None, department: Optional[str] = None) -> User:
    """Create the account, or reset password and role when the email exists"""
    await init_db()
    session_local = get_session_local()
    async with session_local() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None:
            user = User(
                email=email,
                full_name=full_name or email.split("@")[0],
                role=UserRole(role),
                department=department,
            )
            db.add(user)
            action = "created"
        else:
            user.role = UserRole(role)
            user.is_active = True
            if full_name:
                user.full_name = full_name
            action = "updated"

        user.hashed_password = get_password_hash(password)
        await db.commit()
        await db.refresh(user)

    logger.info(f"[CLI] User {action}: {email} ({role})")
    return user


async def _run_reconcile():
    from campus_portal.services.reconciliation import reconciliation_service

    await init_db()
    results = await reconciliation_service.run_once()
    logger.info(f"[CLI] Reconciliation flipped {results['borrows']} borrows, {results['fees']} fees")
    return results


async def _with_engine(coro):
    try:
        return await coro
    finally:
        await close_db()


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)

    if args.command == "serve":
        import uvicorn
        uvicorn.run("campus_portal.main:app", host=args.host, port=args.port, reload=args.reload)
    elif args.command == "init-db":
        asyncio.run(_with_engine(init_db()))
        logger.info("[CLI] Database tables created")
    elif args.command == "create-user":
        user = asyncio.run(_with_engine(create_user(
            args.email, args.password, args.role, args.full_name, args.department,
        )))
        print(f"{user.email} ({user.role.value}) id={user.id}")
    elif args.command == "reconcile":
        results = asyncio.run(_with_engine(_run_reconcile()))
        print(f"borrows={results['borrows']} fees={results['fees']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
