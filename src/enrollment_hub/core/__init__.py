"""
Core module - Configuration, database, Redis, scheduling and realtime delivery.
"""

from enrollment_hub.core.config import get_settings, settings
from enrollment_hub.core.database import Base, close_db, get_db, init_db
from enrollment_hub.core.redis import close_redis, get_redis, init_redis

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
]
