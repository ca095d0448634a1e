"""
Create tables directly from the ORM metadata.

Used for local SQLite runs; deployed databases go through Alembic
(app.db.migrate) instead.
"""
import logging

from app.db.base import Base
from app.db.session import engine
import app.db.models  # noqa: F401  registers all models

logger = logging.getLogger(__name__)


def init_db(bind=None):
    """Create any missing tables on `bind` (defaults to the app engine)."""
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Database tables ensured: {sorted(Base.metadata.tables)}")
