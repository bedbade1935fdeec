#!/usr/bin/env python3
"""Create the signals and trades tables.

Usage:
    python scripts/init_db.py                        # DATABASE_URL from env/.env
    python scripts/init_db.py sqlite+aiosqlite:///./signals.db
"""

import argparse
import asyncio

from sqlalchemy.engine import make_url

from signal_app.storage.database import Base, init_database


async def main(database_url: str | None) -> None:
    db = await init_database(database_url)
    print(f"Database ready: {make_url(db.url).render_as_string(hide_password=True)}")
    print(f"Tables: {', '.join(sorted(Base.metadata.tables))}")
    await db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create database tables")
    parser.add_argument("database_url", nargs="?", default=None)
    asyncio.run(main(parser.parse_args().database_url))
