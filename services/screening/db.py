import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from services.screening.models import Base

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./screening.db")

# SQLite connections are shared across FastAPI's worker threads.
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db(bind=engine) -> None:
    """Create any missing screening tables (dev only; production runs migrations)."""
    Base.metadata.create_all(bind=bind)
    logger.info(f"Screening tables ready on {bind.url.render_as_string(hide_password=True)}")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
