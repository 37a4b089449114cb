#!/usr/bin/env python3
"""
Create the vault tables and, optionally, a first user with an API key.

Usage:
    python init_database.py
    python init_database.py --create-user alice
"""
import argparse
import sys

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from vault.core.security import generate_api_key
from vault.db.session import engine, init_db, SessionLocal
from vault.models import User


def create_user(username: str) -> None:
    full_key, key_hash = generate_api_key()
    with SessionLocal() as db:
        db.add(User(username=username, api_key_hash=key_hash))
        db.commit()

    print(f"User '{username}' created")
    print(f"API key (shown only once): {full_key}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the vault database")
    parser.add_argument("--create-user", metavar="USERNAME", help="Also create a user and print its API key")
    args = parser.parse_args()

    print("Creating database tables...")

    try:
        init_db()

        tables = inspect(engine).get_table_names()
        print(f"Tables ({len(tables)}):")
        for table in tables:
            print(f"   - {table}")

        if args.create_user:
            create_user(args.create_user)
    except SQLAlchemyError as e:
        print(f"Database initialization failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
