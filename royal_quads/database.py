from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings

# ================== DATABASE ==================
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine)
Base = declarative_base()


def init_db(bind=None):
    """Create all tables on ``bind`` (the default engine if omitted)."""
    from . import models  # noqa: F401  registers the tables on Base

    Base.metadata.create_all(bind=bind or engine)
