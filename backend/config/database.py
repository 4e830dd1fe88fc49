"""
Database Configuration
======================

Centralized connection configuration for the API process.
Handles PostgreSQL (inquiry store) and Redis (live change feed) with
proper env var handling.
"""
from typing import Optional
from dataclasses import dataclass

from .settings import Settings, get_settings


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""
    dsn: str
    min_size: int = 2
    max_size: int = 10

    @classmethod
    def from_settings(cls, settings: Settings, min_size: int = 2, max_size: int = 10) -> 'PostgresConfig':
        """Create config from application settings."""
        if not settings.database_url:
            raise ValueError("DATABASE_URL (or POSTGRES_* variables) is required")
        return cls(dsn=settings.database_url, min_size=min_size, max_size=max_size)

    def to_asyncpg_kwargs(self) -> dict:
        """Convert to asyncpg.create_pool kwargs."""
        return {
            'dsn': self.dsn,
            'min_size': self.min_size,
            'max_size': self.max_size,
        }


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    url: str
    channel: str = "inquiries:changes"

    @classmethod
    def from_settings(cls, settings: Settings) -> 'RedisConfig':
        """Create config from application settings."""
        if not settings.redis_url:
            raise ValueError("REDIS_URL is required when the live feed is enabled")
        return cls(url=settings.redis_url, channel=settings.live_feed_channel)


def get_postgres_config(settings: Optional[Settings] = None,
                        min_size: int = 2, max_size: int = 10) -> PostgresConfig:
    """Get PostgreSQL configuration from settings."""
    return PostgresConfig.from_settings(settings or get_settings(), min_size=min_size, max_size=max_size)


def get_redis_config(settings: Optional[Settings] = None) -> RedisConfig:
    """Get Redis configuration from settings."""
    return RedisConfig.from_settings(settings or get_settings())


async def create_live_feed(synchronizer, settings: Optional[Settings] = None):
    """Create and connect the Redis change feed for ``synchronizer``."""
    from services.live_feed import RedisChangeFeed
    config = get_redis_config(settings)
    feed = RedisChangeFeed(config.url, synchronizer, channel=config.channel)
    await feed.connect()
    return feed
