# Database infrastructure
from .connection import (
    DatabaseManager,
    get_db_session,
    get_db,
    init_db,
    health_check,
)

__all__ = [
    "DatabaseManager",
    "get_db_session",
    "get_db",
    "init_db",
    "health_check",
]
