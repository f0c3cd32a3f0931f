# clubportal/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv
from contextlib import contextmanager
from typing import Dict, List
import threading
import os

load_dotenv()

# --- CONFIGURATION ---
# SQLite for development and tests, PostgreSQL in production
SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL", "")
if SQLALCHEMY_DATABASE_URL == "":
    raise ValueError("DATABASE_URL is not configured. Please check env files")


def build_engine(url: str):
    """Create an engine with the pool settings that fit the backend."""
    if url.startswith("postgresql"):
        return create_engine(
            url,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=3600
        )

    # check_same_thread is needed only for SQLite
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every session gets an empty database
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool
        )

    return create_engine(
        url,
        connect_args={"check_same_thread": False}
    )


# --- THE ENGINE ---
engine = build_engine(SQLALCHEMY_DATABASE_URL)

# --- THE SESSION ---
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# --- THE BASE ---
# All our models (User, Club, Event, ...) inherit from this
Base = declarative_base()


# --- DEPENDENCY ---
# Opens a session for a request and closes it afterwards, even on error.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# --- WRITE SERIALIZATION ---
# One lock per club/event so that check-then-insert sequences (capacity,
# duplicate membership) never interleave inside this process.
# An entry lives only while someone holds or waits for it.
_resource_locks: Dict[str, List] = {}
_resource_locks_guard = threading.Lock()


@contextmanager
def resource_lock(key: str):
    with _resource_locks_guard:
        entry = _resource_locks.setdefault(key, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _resource_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _resource_locks[key]
