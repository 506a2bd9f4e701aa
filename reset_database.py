#!/usr/bin/env python3
"""
Database Reset Script
Clears the database and stores an empty pool from the current settings
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from zkpool.config import get_settings
from zkpool.core.pool import ShieldedPool
from zkpool.crypto.verifier import WitnessVerifier
from zkpool.logging_config import configure_logging
from zkpool.storage.database import DatabaseManager
from zkpool.utils.encoding import digest_to_hex


def reset_database():
    """Reset database and create an empty pool"""
    settings = get_settings()
    print(f"🔄 Resetting database {settings.database_url}...")

    db = DatabaseManager(settings.database_url)

    print("  ⚠️  Dropping all tables...")
    db.drop_tables()

    print("  ✨ Creating tables...")
    db.create_tables()

    print("  🌳 Storing empty pool...")
    pool = ShieldedPool.from_settings(WitnessVerifier(settings.tree_depth), settings=settings, db=db)
    db.engine.dispose()

    print("\n✅ Database reset complete!")
    print(f"   • tree depth: {pool.tree.depth} ({pool.tree.capacity} deposits)")
    print(f"   • root history: {pool.tree.root_history_size} roots")
    print(f"   • denomination: {pool.denomination}")
    print(f"   • root: {digest_to_hex(pool.root)}")


if __name__ == "__main__":
    configure_logging()
    try:
        reset_database()
    except KeyboardInterrupt:
        print("\n\n⚠️  Operation cancelled by user")
        sys.exit(1)
    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        sys.exit(1)
