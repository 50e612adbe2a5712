"""SQLAlchemy + SQLite key-value store.

Plays the part of browser local storage for the backend: string keys,
string values, synchronous get/set/remove, no built-in expiry. Values
survive restarts until overwritten or removed.
"""

import os
from datetime import datetime, timezone
from pathlib import Path

import structlog
from sqlalchemy import Column, DateTime, String, Text, create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)

Base = declarative_base()


class KVEntry(Base):
    """One stored key/value pair."""
    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


class KeyValueStore:
    """String-keyed, string-valued persistent store."""

    def __init__(self, database_url: str | None = None):
        """Create the engine and table.

        Args:
            database_url: SQLAlchemy connection string. Defaults to DATABASE_URL env var.
        """
        url = database_url or os.environ.get("DATABASE_URL", "sqlite:///data/cosmic_lens.sqlite")
        parsed = make_url(url)

        engine_kwargs = {}
        if parsed.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if parsed.database in (None, "", ":memory:"):
                # One shared connection, otherwise every checkout sees an empty database
                engine_kwargs["poolclass"] = StaticPool
            else:
                Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_engine(url, echo=False, **engine_kwargs)
        self._Session = sessionmaker(bind=self._engine)
        Base.metadata.create_all(self._engine)
        logger.info("kv.initialized", url=parsed.render_as_string(hide_password=True))

    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        with self._Session() as session:
            entry = session.get(KVEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        """Insert or overwrite a value."""
        with self._Session() as session:
            session.merge(KVEntry(key=key, value=value, updated_at=datetime.now(timezone.utc)))
            session.commit()
        logger.debug("kv.set", key=key)

    def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""
        with self._Session() as session:
            session.query(KVEntry).filter(KVEntry.key == key).delete()
            session.commit()
        logger.debug("kv.remove", key=key)

    def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with prefix, sorted."""
        with self._Session() as session:
            query = session.query(KVEntry.key)
            if prefix:
                query = query.filter(KVEntry.key.startswith(prefix, autoescape=True))
            return [row.key for row in query.order_by(KVEntry.key).all()]

    def is_healthy(self) -> bool:
        """Check the database answers a trivial query."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("kv.unhealthy", error=str(e))
            return False

    def dispose(self) -> None:
        self._engine.dispose()
