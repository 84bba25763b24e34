"""
Mainstream - Core Package
=========================

Core business logic, models, and schemas.
"""

from mainstream.core.config import settings
from mainstream.core.database import Base, get_db, get_db_session

__all__ = ["Base", "get_db", "get_db_session", "settings"]
