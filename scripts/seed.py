#!/usr/bin/env python3
"""Create the schema and load reference data into the configured database."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dropiq.core import database  # noqa: E402
from dropiq.core.seed import seed_achievements, seed_sample_airdrops  # noqa: E402


async def run(with_airdrops: bool) -> tuple[int, int]:
    await database.start_db()
    if not database.is_db_enabled():
        raise SystemExit("Database is disabled (ENABLE_DB=false)")
    try:
        await database.init_db()
        async with database.SessionLocal() as session:
            achievements = await seed_achievements(session)
            airdrops = await seed_sample_airdrops(session) if with_airdrops else 0
        return achievements, airdrops
    finally:
        await database.shutdown_db()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--with-airdrops", action="store_true", help="Also insert approved sample airdrops")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    achievements, airdrops = asyncio.run(run(args.with_airdrops))
    print(f"Seeded {achievements} achievements and {airdrops} airdrops")


if __name__ == "__main__":
    main()
