#!/usr/bin/env python3
"""
Database initialization script for the wallet authentication service.

Creates the ``users`` and ``auth_methods`` tables and checks connectivity.
"""
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from walletauth.database import check_database_health, close_database, get_database_url, init_database


def main():
    """Initialize database and create all tables."""
    print("=" * 60)
    print("Wallet Auth Database Initialization")
    print("=" * 60)

    try:
        db_url = get_database_url()
        print(f"\nDatabase: {db_url.split('@')[1] if '@' in db_url else db_url}")

        print("\nCreating database tables...")
        init_database(db_url, create_tables=True)

        health = check_database_health()
        print(f"\nDatabase health: {health['status']}")
        if not health["connected"]:
            print(f"  error: {health.get('error')}")
            return 1

        print("\nDatabase initialization complete!")
        return 0

    except Exception as e:
        print(f"\nError initializing database: {e}")
        import traceback

        traceback.print_exc()
        return 1
    finally:
        close_database()


if __name__ == "__main__":
    sys.exit(main())
