#!/usr/bin/env python
"""Create the PAYE engine tables.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --database-url sqlite+aiosqlite:///./paye.db
"""

import argparse
import asyncio

from paye_engine.database import create_all, get_engine
from paye_engine.models import Base


async def run(database_url: str | None) -> None:
    engine = get_engine(database_url)
    try:
        await create_all(engine)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create PAYE engine tables")
    parser.add_argument(
        "--database-url",
        help="Async SQLAlchemy URL (default: DATABASE_URL from the environment)",
    )
    args = parser.parse_args()

    asyncio.run(run(args.database_url))
    for table in Base.metadata.sorted_tables:
        print(f"  {table.name}")
    print("Tables created.")


if __name__ == "__main__":
    main()
