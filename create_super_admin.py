"""
Bootstrap a super-admin account.

    python create_super_admin.py --email admin@example.com --name "Super Admin"

The password is read from --password or prompted for.
"""

import argparse
import getpass
import logging
import sys

from pymongo.database import Database

import database
from database import create_document
from schemas import User
from security import hash_password

logger = logging.getLogger("create_super_admin")


def create_super_admin(db: Database, name: str, email: str, password: str) -> bool:
    """Returns False when an account with `email` already exists."""
    email = email.strip().lower()
    if db["user"].find_one({"email": email}, {"_id": 1}):
        return False
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role="super-admin",
        email_verified=True,
        phone_verified=True,
    )
    create_document(db, "user", user.to_document())
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create a super-admin account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Super Admin")
    parser.add_argument("--password")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    if database.db is None:
        logger.error("DATABASE_URL is not set")
        return 1

    password = args.password or getpass.getpass("Password: ")
    if len(password) < 6:
        logger.error("Password must be at least 6 characters")
        return 1

    if create_super_admin(database.db, args.name, args.email, password):
        logger.info("Super admin %s created", args.email)
    else:
        logger.info("An account with %s already exists", args.email)
    return 0


if __name__ == "__main__":
    sys.exit(main())
