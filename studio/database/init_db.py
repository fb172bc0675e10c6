"""
Schema bootstrap for the studio database.

The app lifespan calls init_tables() on startup; the test suite calls it
against a fresh in-memory SQLite engine before every test. Running
`python -m studio.database.init_db` does the same by hand, and
`--drop` wipes the schema first.
"""
import sys
from typing import List

from studio.core.logging_config import get_logger
from studio.database.connection import get_database
from studio.database.models import Base

logger = get_logger(__name__)


def table_names() -> List[str]:
    """Tables declared on the ORM metadata, in dependency order."""
    return [table.name for table in Base.metadata.sorted_tables]


def init_tables() -> List[str]:
    """
    Create missing tables; existing ones are left untouched.

    Returns:
        Names of every table the studio declares
    """
    engine = get_database().engine
    try:
        Base.metadata.create_all(engine)
    except Exception as e:
        logger.error(f"Schema creation failed on {engine.url.get_backend_name()}: {e}")
        raise

    names = table_names()
    logger.info(f"Schema ready on {engine.url.get_backend_name()}: {len(names)} tables")
    return names


def drop_tables() -> None:
    """Drop the whole studio schema. Development and tests only."""
    engine = get_database().engine
    try:
        Base.metadata.drop_all(engine)
    except Exception as e:
        logger.error(f"Schema drop failed: {e}")
        raise
    logger.warning(f"Dropped {len(Base.metadata.tables)} studio tables")


if __name__ == "__main__":
    if "--drop" in sys.argv[1:]:
        drop_tables()
    for name in init_tables():
        print(f"  {name}")
