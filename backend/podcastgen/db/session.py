from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from podcastgen.core.config import settings

# Create the SQLAlchemy engine.
# `check_same_thread` is specific to SQLite: repository calls are executed in
# worker threads so the connection must not be pinned to the creating thread.
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

# A factory for sessions. `expire_on_commit=False` keeps loaded attributes
# readable after commit, which the repository relies on when converting rows
# into pydantic schemas.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Create a Base class for our SQLAlchemy models to inherit from.
Base = declarative_base()

