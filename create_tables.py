"""
Create (or recreate) the AdStudio tables without Alembic.

    python create_tables.py          # create missing tables
    python create_tables.py --reset  # drop everything first (local only)
"""
import argparse
import asyncio

from adstudio.config import settings
from adstudio.database import engine
from adstudio.models.base import Base
# Registers every table on Base.metadata
from adstudio.models.user import User  # noqa: F401
from adstudio.models.credit import CreditAccount, LedgerEntry  # noqa: F401
from adstudio.models.project import Project, PromptRecord, ReferenceAnalysisRecord  # noqa: F401
from adstudio.models.generation import Generation  # noqa: F401


async def create_all_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


async def drop_all_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    print("All tables dropped!")


async def main(reset: bool = False):
    if reset:
        if settings.ENVIRONMENT == "production":
            raise SystemExit("Refusing to drop tables in production.")
        await drop_all_tables()
    await create_all_tables()
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    asyncio.run(main(reset=parser.parse_args().reset))
