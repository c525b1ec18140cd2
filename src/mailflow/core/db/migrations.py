"""Reusable migration runner for deploys and the worker entrypoint."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

from alembic.config import Config

from alembic import command

ALEMBIC_CONFIG = "alembic.ini"


def run_migrations_sync(revision: str = "head") -> None:
    """Run Alembic migrations synchronously.

    Args:
        revision: Target revision, ``head`` by default.
    """
    command.upgrade(Config(ALEMBIC_CONFIG), revision)


async def run_migrations_async(revision: str = "head") -> None:
    """Run Alembic migrations from async context.

    Uses ThreadPoolExecutor because env.py drives its own event loop.
    """
    loop = asyncio.get_running_loop()
    with ThreadPoolExecutor() as pool:
        await loop.run_in_executor(pool, run_migrations_sync, revision)
