"""Wholesale database management CLI.

Usage:
    wholesale-manage setup-db   # Create all tables
    wholesale-manage drop-db    # Drop all tables
"""

import argparse
import sys

from wholesale.utils.logging import configure_logging


def setup_database():
    from wholesale.domain import wholesale
    from wholesale.utils.db import setup_db

    print("Initializing wholesale domain...")
    wholesale.init()
    print("Creating wholesale database schema...")
    setup_db(wholesale)
    print("Done.")


def drop_database():
    from wholesale.domain import wholesale
    from wholesale.utils.db import drop_db

    print("Initializing wholesale domain...")
    wholesale.init()
    print("Dropping wholesale database schema...")
    drop_db(wholesale)
    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="Wholesale database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()
    configure_logging(log_file_prefix="wholesale_manage")

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
