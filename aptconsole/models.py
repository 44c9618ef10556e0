# SQLAlchemy ORM models for the console's own persisted state.
# Upstream entities (users, apartments, ...) are never stored here; they live behind the REST API.
from sqlalchemy import Column, String, Text, DateTime, func
from sqlalchemy.orm import declarative_mixin

from .db import Base


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps automatically managed by the database.

    - created_at: set on insert
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class StorageItem(Base, TimestampMixin):
    """One key/value pair of durable client storage.

    Known keys:
    - user: JSON-serialized session subject
    - token: bearer token attached to upstream requests
    """
    __tablename__ = "client_storage"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
