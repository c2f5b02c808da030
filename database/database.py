import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from .models import Base

load_dotenv()

# SQLite by default; any SQLAlchemy URL works (e.g. PostgreSQL in production).
SQLALCHEMY_DATABASE_URL = os.getenv("LIFELEVELER_DATABASE_URL", "sqlite:///./lifeleveler.db")


def make_engine(url: str = SQLALCHEMY_DATABASE_URL):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Creates the storage slot table if it does not exist yet."""
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Dependency for FastAPI route handlers."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
