#!/usr/bin/env python3
"""
Quest Template Seeding Script

Creates the schema (if missing) and upserts the core, bonus and rotating
quest templates. Safe to run repeatedly.

Usage:
    python scripts/seed_quest_templates.py [--skip-schema]

Requirements:
    - Database connection configured (DATABASE_URL env var)
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fitquest.db.connection import db
from fitquest.db.seed import apply_schema, seed_quest_templates

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main(skip_schema: bool) -> None:
    await db.init_pool()
    try:
        if not skip_schema:
            await apply_schema()
        count = await seed_quest_templates()
        logger.info(f"Done: {count} templates seeded")
    finally:
        await db.close_pool()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed FitQuest quest templates")
    parser.add_argument("--skip-schema", action="store_true", help="Do not run schema.sql first")
    args = parser.parse_args()
    asyncio.run(main(args.skip_schema))
