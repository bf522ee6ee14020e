# File: app/db/models/base.py
"""
Base models and mixins for LodgePay.

This module provides the foundation for all database models in the system:
- Base SQLAlchemy model class
- Timestamp mixin
- AbstractBase with primary key, UUID and activation flag
"""

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, Integer, String, DateTime, Boolean, MetaData
from sqlalchemy.orm import declarative_base

# Create the SQLAlchemy base
Base = declarative_base(metadata=MetaData())


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form SQLite round-trips."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    """
    Mixin providing automatic timestamp functionality.

    Adds created_at and updated_at timestamps that are automatically
    maintained when records are created or updated.
    """

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)


class AbstractBase(Base):
    """
    Abstract base class for all model entities.

    Attributes:
        id: Primary key ID (auto-incremented)
        uuid: Unique identifier (UUID) for the record
        is_active: Soft activation flag
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, default=lambda: str(uuid.uuid4()))
    is_active = Column(Boolean, default=True, nullable=False)
