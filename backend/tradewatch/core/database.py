"""
Database engine & session management.

One Session per request (via ``get_db``) or per scheduled job
(``SessionLocal()``). Tables are created with ``init_db``; schema migrations
are handled outside this service.
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from tradewatch.core.config import settings

logger = logging.getLogger("tradewatch.core.database")

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a session that is always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables registered on ``Base``."""
    # Model modules register their tables on import
    from tradewatch.models import alert, market_data  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")
