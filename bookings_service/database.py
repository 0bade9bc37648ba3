import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from common.settings import DEFAULT_DATABASE_URL

DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    Yield a SQLAlchemy database session for the Bookings service.

    Used as a FastAPI dependency: one session per request, always closed
    afterwards.

    Yields
    ------
    Session
        Active SQLAlchemy session bound to the bookings database engine.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
