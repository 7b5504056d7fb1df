"""Durable key/value persistence for configuration, ledger and key material."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ausmo.errors import PersistenceError

from .models import Base, KeyValueRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """String key/value store provided by the host application."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store; state is lost when the process exits."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class SqlKeyValueStore:
    """Key/value store backed by a SQLAlchemy engine (SQLite by default)."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = database_url
        self._engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        logger.info("Key/value store ready at %s", self._engine.url.render_as_string(hide_password=True))

    def get(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                record = session.get(KeyValueRecord, key)
                return record.value if record is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read key '{key}': {exc}", path=key) from exc

    def set(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                session.merge(KeyValueRecord(
                    key=key,
                    value=value,
                    updated_at=datetime.now(timezone.utc),
                ))
                session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to write key '{key}': {exc}", path=key) from exc

    def delete(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                record = session.get(KeyValueRecord, key)
                if record is not None:
                    session.delete(record)
                    session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete key '{key}': {exc}", path=key) from exc

    def dispose(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()
