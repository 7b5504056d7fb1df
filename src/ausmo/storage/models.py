"""SQLAlchemy ORM models for durable resilience state.

Tables:
- kv_records: opaque string values keyed by name (configuration, ledger,
  restore history, device id, master key, deletion audit log)
"""

from sqlalchemy import Column, DateTime, String, Text, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class KeyValueRecord(Base):
    """One persisted key/value pair."""

    __tablename__ = "kv_records"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<KeyValueRecord(key={self.key!r})>"
