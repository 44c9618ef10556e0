from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os

# Durable client storage (session subject, bearer token). Defaults to a local SQLite file;
# override with CONSOLE_DATABASE_URL to share storage between console processes.
DATABASE_URL = os.getenv("CONSOLE_DATABASE_URL", "sqlite:///./console.db")

if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=280,  # recycle connections periodically to prevent 'server has gone away'
        pool_size=5,
        max_overflow=5,
    )

# Session factory: one short-lived session per storage operation
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models declared via SQLAlchemy's declarative API
Base = declarative_base()
