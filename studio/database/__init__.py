"""
Database module - SQLAlchemy access layer.

This module handles:
- Database connection management
- ORM models for every studio table
- Schema creation
"""
from studio.database.connection import DatabaseConnection, get_database, reset_database
from studio.database.init_db import drop_tables, init_tables
from studio.database.models import Base

__all__ = [
    "DatabaseConnection",
    "get_database",
    "reset_database",
    "Base",
    "init_tables",
    "drop_tables",
]
