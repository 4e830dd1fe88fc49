"""
Repository Pattern - Storage abstraction layer

Repositories hide storage details (PostgreSQL) from business logic.
Consumers work with quoteflow domain models, not asyncpg records.

- InquiryRepository: PostgreSQL implementation of quoteflow.InquiryStore
"""
import asyncpg

from config import get_settings, get_postgres_config

from .inquiry_repository import InquiryRepository

# Shared database connection pool (initialized on first use)
db_pool = None


async def get_db_pool():
    """Get or create shared database connection pool"""
    global db_pool
    if db_pool is None:
        config = get_postgres_config(get_settings())
        db_pool = await asyncpg.create_pool(**config.to_asyncpg_kwargs())
    return db_pool


async def close_db_pool():
    """Close the shared pool if it was opened"""
    global db_pool
    if db_pool is not None:
        await db_pool.close()
        db_pool = None


__all__ = [
    'InquiryRepository',
    'db_pool',
    'get_db_pool',
    'close_db_pool',
]
