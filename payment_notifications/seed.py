#!/usr/bin/env python3
"""
Seed the database with customers.

Usage:
    python -m payment_notifications.seed --count 10
"""

import argparse
import asyncio
import logging
from typing import List, Optional

from .database.db import Database

logger = logging.getLogger(__name__)


async def seed_customers(db: Database, count: int = 10) -> List[int]:
    """
    Create customers named 'customer 0' to 'customer <count-1>'.

    All inserts share one transaction, so either every customer is
    created or none is.

    Returns:
        IDs of the created customers
    """
    names = [f"customer {i}" for i in range(count)]
    ids = await db.create_customers(names)
    logger.info(f"Seeded {len(ids)} customers")
    return ids


async def main(database_url: Optional[str], count: int) -> None:
    db = Database(database_url)
    await db.connect()
    try:
        await db.init_schema()
        ids = await seed_customers(db, count)
        print(f"Created customers: {', '.join(str(i) for i in ids)}")
    finally:
        await db.disconnect()


def run() -> None:
    """Console script entry point."""
    parser = argparse.ArgumentParser(description="Seed customers for Payment Notifications")
    parser.add_argument("--count", type=int, default=10, help="Number of customers to create")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(main(args.database_url, args.count))


if __name__ == '__main__':
    run()
