"""
Database migration script for the holdings ledger.
Creates the holdings and transactions tables (and their indexes) for the
configured database.
"""

import logging
import sys
from typing import Optional

from sqlalchemy import inspect

from config import Settings, get_settings
from db_engine import LedgerStore
from errors import PersistenceError

logger = logging.getLogger(__name__)

LEDGER_TABLES = ("holdings", "transactions")


def migrate_ledger_tables(store: LedgerStore) -> list:
    """
    Create any missing ledger tables.

    Returns:
        Names of the tables that were created
    """
    existing = set(inspect(store.engine).get_table_names())
    missing = [name for name in LEDGER_TABLES if name not in existing]

    if missing:
        logger.info(f"Creating ledger tables: {', '.join(missing)}")
        store.create_schema()
    else:
        logger.info("Ledger tables already exist")
    return missing


def run_all_migrations(settings: Optional[Settings] = None) -> list:
    """Run all pending migrations against the configured database."""
    settings = settings or get_settings()
    print("=" * 60)
    print("Holdings Ledger Database Migration")
    print("=" * 60)

    with LedgerStore.from_settings(settings) as store:
        created = migrate_ledger_tables(store)

    for name in LEDGER_TABLES:
        status = "Created" if name in created else "Exists"
        print(f"  {status}: {name}")

    print("=" * 60)
    print("Migration complete!")
    print("=" * 60)
    return created


if __name__ == "__main__":
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        run_all_migrations(settings)
    except PersistenceError as e:
        logger.error(f"Migration failed: {e}")
        sys.exit(1)
