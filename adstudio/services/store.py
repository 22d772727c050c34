"""
Key-value storage for ads, version streams and mixer state.

A single SQLAlchemy table of (key, JSON value) rows. Keys follow the layout
in `AdKeys`; values are JSON documents serialised with sorted keys so equal
states are stored byte-for-byte identically.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import DateTime, String, Text, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class StorageUnavailable(Exception):
    """The store could not be reached or failed the operation."""


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

class AdKeys:
    """Key builders for everything persisted about an ad."""

    ALL_ADS = "ads:all"

    @staticmethod
    def meta(ad_id: str) -> str:
        return f"ad:{ad_id}:meta"

    @staticmethod
    def versions(ad_id: str, stream: str) -> str:
        return f"ad:{ad_id}:{stream}:versions"

    @staticmethod
    def sequence(ad_id: str, stream: str) -> str:
        return f"ad:{ad_id}:{stream}:seq"

    @staticmethod
    def active(ad_id: str, stream: str) -> str:
        return f"ad:{ad_id}:{stream}:active"

    @staticmethod
    def draft(ad_id: str, stream: str) -> str:
        return f"ad:{ad_id}:{stream}:draft"

    @staticmethod
    def version(ad_id: str, stream: str, version_id: str) -> str:
        return f"ad:{ad_id}:{stream}:v:{version_id}"

    @staticmethod
    def mixer(ad_id: str) -> str:
        return f"ad:{ad_id}:mixer"

    @staticmethod
    def mixer_volumes(ad_id: str) -> str:
        return f"ad:{ad_id}:mixer:volumes"


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry {self.key}>"


def dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _create_engine(database_url: str):
    kwargs: Dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise each session sees an empty database
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class KeyValueStore:
    """String keys to JSON values. Every failure surfaces as StorageUnavailable."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        try:
            self._engine = _create_engine(database_url)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Cannot open store at {database_url}: {e}") from e
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._sessions() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Store operation failed: {type(e).__name__}: {e}")
            raise StorageUnavailable(str(e)) from e

    # -- raw strings --------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        with self._session() as session:
            entry = session.get(KeyValueEntry, key)
            return entry.value if entry else None

    def get_many(self, keys: Iterable[str]) -> Dict[str, str]:
        keys = list(keys)
        if not keys:
            return {}
        with self._session() as session:
            rows = session.execute(
                select(KeyValueEntry.key, KeyValueEntry.value).where(KeyValueEntry.key.in_(keys))
            )
            return {key: value for key, value in rows}

    def write(self, sets: Optional[Dict[str, str]] = None, deletes: Iterable[str] = ()) -> None:
        """Apply several sets and deletes in one transaction."""
        sets = sets or {}
        deletes = [key for key in deletes if key not in sets]
        with self._session() as session:
            for key, value in sets.items():
                session.merge(KeyValueEntry(key=key, value=value))
            if deletes:
                session.execute(delete(KeyValueEntry).where(KeyValueEntry.key.in_(deletes)))
            session.commit()

    def set(self, key: str, value: str) -> None:
        self.write(sets={key: value})

    def delete(self, *keys: str) -> None:
        self.write(deletes=keys)

    def keys(self, prefix: str = "") -> List[str]:
        with self._session() as session:
            query = select(KeyValueEntry.key).order_by(KeyValueEntry.key)
            if prefix:
                query = query.where(KeyValueEntry.key.startswith(prefix, autoescape=True))
            return list(session.scalars(query))

    # -- JSON ---------------------------------------------------------------

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        return json.loads(raw) if raw is not None else None

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, dumps(value))

    def close(self) -> None:
        self._engine.dispose()
