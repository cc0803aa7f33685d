"""
Create accounts from the command line.

The HTTP API only lets an admin create admin or teacher accounts, so the first
admin of a fresh database is created here.
"""

import argparse
import getpass
import logging
import os
import sys
from typing import Optional

import anyio
from dotenv import load_dotenv

from .collaborators import Identity
from .config import Settings
from .context import build_context
from .errors import SchoolAdminError
from .models import Role


async def create_account(
    settings: Settings, email: str, password: str, role: str, linked_id: Optional[str] = None
) -> Identity:
    context = build_context(settings)
    try:
        return await context.new_session().signup(email, password, role, linked_id=linked_id)
    finally:
        if context.engine is not None:
            context.engine.dispose()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create a school admin account")
    parser.add_argument("email", help="Login email of the new account")
    parser.add_argument("--role", default=Role.ADMIN.value, choices=[role.value for role in Role])
    parser.add_argument("--linked-id", default=None, help="Record id a student or parent account may see")
    parser.add_argument("--password", default=None, help="Prompted for when omitted")
    args = parser.parse_args(argv)

    load_dotenv(dotenv_path=os.path.join(os.getcwd(), ".env"))
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    password = args.password or getpass.getpass("Password: ")
    try:
        identity = anyio.run(create_account, Settings(), args.email, password, args.role, args.linked_id)
    except SchoolAdminError as e:
        print(f"Error: {e.message}")
        return 1
    print(f"Created {args.role} account {identity.email} ({identity.uid})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
