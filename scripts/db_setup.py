#!/usr/bin/env python3
"""
Database setup script for the message quota service.

Uses SQLAlchemy models as the single source of truth for schema.
All tables, indexes, and constraints are defined in src/db/models.py.

Usage:
    python scripts/db_setup.py setup      # Create database and all tables
    python scripts/db_setup.py teardown   # Drop all tables (with confirmation)
    python scripts/db_setup.py reset      # Teardown + setup (full reset)
    python scripts/db_setup.py status     # Show current database state
    python scripts/db_setup.py models     # Show model definitions

Environment variables (from .env):
    - DATABASE_URL: Full asyncpg URL (overrides the individual settings)
    - DATABASE_NAME: Target database name (default: message_quota)
    - DATABASE_USER / DATABASE_PASSWORD / DATABASE_HOST / DATABASE_PORT
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from sqlalchemy import text
from sqlalchemy.engine import make_url

from src.db.connection import db
from src.db.models import Base


# =============================================================================
# DATABASE OPERATIONS
# =============================================================================

async def create_database():
    """Create the target database if it doesn't exist."""
    import asyncpg

    url = make_url(db.config.database_url)
    target_db = url.database

    logger.info(f"Checking if database '{target_db}' exists...")

    conn = await asyncpg.connect(
        host=url.host or "localhost",
        port=url.port or 5432,
        user=url.username,
        password=url.password,
        database="postgres",
    )
    try:
        exists = await conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1",
            target_db
        )

        if exists:
            logger.info(f"Database '{target_db}' already exists")
            return

        logger.info(f"Creating database '{target_db}'...")
        await conn.execute(f'CREATE DATABASE "{target_db}"')
        logger.info(f"Database '{target_db}' created successfully")

    finally:
        await conn.close()


# =============================================================================
# CLI COMMANDS
# =============================================================================

async def cmd_setup():
    """Setup command: Create database and tables."""
    logger.info("=" * 60)
    logger.info("Database Setup")
    logger.info("=" * 60)

    await create_database()
    await db.create_tables()

    table_names = sorted(Base.metadata.tables.keys())
    logger.info(f"Tables ready: {', '.join(table_names)}")
    logger.info("Next step: python scripts/seed_tiers.py")

    await db.close_all()


async def cmd_teardown(force: bool = False):
    """Teardown command: Drop all tables."""
    if not force:
        confirm = input("Are you sure you want to DROP all tables? This cannot be undone. (yes/no): ")
        if confirm.lower() != "yes":
            logger.info("Operation cancelled")
            return

    await db.drop_tables()
    await db.close_all()
    logger.info("Teardown completed")


async def cmd_reset(force: bool = False):
    """Reset command: Teardown + Setup."""
    if not force:
        confirm = input("Are you sure you want to RESET the database? All usage data will be lost. (yes/no): ")
        if confirm.lower() != "yes":
            logger.info("Operation cancelled")
            return

    try:
        await db.drop_tables()
    except Exception as e:
        logger.warning(f"Teardown error (may be expected if tables don't exist): {e}")

    await cmd_setup()


async def cmd_status():
    """Status command: Show tables, row counts and missing tables."""
    if not await db.test_connection():
        logger.error("Cannot connect to the database")
        return

    async with db.session() as session:
        result = await session.execute(text("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """))
        existing_tables = [row.table_name for row in result]

        logger.info(f"Tables ({len(existing_tables)}):")
        for table_name in existing_tables:
            count = await session.scalar(text(f'SELECT COUNT(*) FROM "{table_name}"'))
            logger.info(f"  - {table_name}: {count} rows")

    missing = set(Base.metadata.tables.keys()) - set(existing_tables)
    if missing:
        logger.info(f"Missing tables (defined in models but not in DB): {', '.join(sorted(missing))}")

    await db.close_all()


def cmd_models():
    """Models command: List all models and their tables/columns."""
    print("=" * 60)
    print("SQLAlchemy Models")
    print("=" * 60)
    print()

    for table_name, table in sorted(Base.metadata.tables.items()):
        print(f"Table: {table_name}")
        print("-" * 40)

        for column in table.columns:
            nullable = "NULL" if column.nullable else "NOT NULL"
            pk = " PRIMARY KEY" if column.primary_key else ""
            print(f"  {column.name}: {column.type} {nullable}{pk}")

        for index in table.indexes:
            cols = ", ".join([c.name for c in index.columns])
            print(f"  INDEX {index.name} ({cols})")

        for constraint in table.constraints:
            if constraint.name and not constraint.name.endswith('_pkey'):
                print(f"  CONSTRAINT {constraint.name}")

        print()


# =============================================================================
# MAIN
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description="Database setup script for the message quota service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  setup      Create database and all tables from models
  teardown   Drop all tables (with confirmation)
  reset      Teardown + setup (full reset)
  status     Show current database state
  models     List all SQLAlchemy models and their schema

Examples:
  python scripts/db_setup.py setup              # Create all tables
  python scripts/db_setup.py teardown --force   # Drop tables without confirmation
        """
    )

    parser.add_argument(
        "command",
        choices=["setup", "teardown", "reset", "status", "models"],
        help="Command to execute"
    )
    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Skip confirmation prompts for destructive operations"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "models":
        cmd_models()
        return

    if not db.config.enabled:
        logger.error("DATABASE_ENABLED=false - nothing to set up")
        sys.exit(1)

    print(f"\nTarget database: {make_url(db.config.database_url).database}\n")

    if args.command == "setup":
        asyncio.run(cmd_setup())
    elif args.command == "teardown":
        asyncio.run(cmd_teardown(force=args.force))
    elif args.command == "reset":
        asyncio.run(cmd_reset(force=args.force))
    elif args.command == "status":
        asyncio.run(cmd_status())


if __name__ == "__main__":
    main()
