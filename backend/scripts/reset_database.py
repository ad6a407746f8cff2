#!/usr/bin/env python3
"""
Drop and recreate every harvester table.

Deletes all stories, comments, extraction jobs, embeddings and task
records. Refuses to run when APP_ENV=production.

Usage:
    python scripts/reset_database.py
"""

import asyncio

from harvester.core.logging import setup_logging
from harvester.db.session import close_db, reset_db


async def main():
    print("\n🗑️  Resetting database...")

    try:
        await reset_db()
    finally:
        await close_db()

    print("✅ All tables dropped and recreated")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
