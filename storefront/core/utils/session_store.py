"""Server-side session storage on a SQL table.

Each row holds one browser session: the random id carried in the session
cookie, a versioned JSON payload and an absolute expiry. Rows past their
expiry are invisible to lookups and are removed by the periodic sweeper in
``storefront.core.utils.session_cleanup``.
"""
from __future__ import annotations

import logging
import secrets
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Dict, Generator, Optional, Union

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError
from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from storefront.core.schemas.session import SessionPayload, StoredSession
from storefront.db.models.session_record import SessionRecord
from storefront.db.session import get_db_sync

logger = logging.getLogger(__name__)

TTL = Union[int, float, timedelta]


class SessionStoreError(Exception):
    """Base class for session storage failures"""
    pass


class StoreUnavailable(SessionStoreError):
    """Raised when the session database cannot be reached or rejects the connection"""
    pass


class MalformedPayload(SessionStoreError):
    """Raised when a stored payload cannot be decoded, or a new one cannot be encoded"""
    pass


class SweepFailure(SessionStoreError):
    """Raised when a sweep of expired sessions does not complete"""
    pass


def utcnow() -> datetime:
    """Current time as naive UTC, the representation stored in ``expires_at``."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def short_id(session_id: str) -> str:
    """Session ids are bearer tokens; only a prefix ever goes to the logs."""
    return f"{session_id[:8]}..."


def _as_timedelta(ttl: TTL) -> timedelta:
    delta = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)
    if delta <= timedelta(0):
        raise ValueError(f"Session TTL must be positive, got {ttl!r}")
    return delta


class SessionStore:
    """Load, save, renew, destroy and sweep session rows."""

    def __init__(
        self,
        bind: Optional[Engine] = None,
        create_table_if_missing: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if bind is None:
            from storefront.db.session import engine

            bind = engine
        self.engine: Engine = bind
        self.create_table_if_missing = create_table_if_missing
        self._clock = clock

        # Threading primitives for table initialization
        self._table_ready = False
        self._table_lock = Lock()

    @staticmethod
    def new_id() -> str:
        """Generate an unguessable session id (256 bits of entropy)."""
        return secrets.token_urlsafe(32)

    def now(self) -> datetime:
        return self._clock()

    def _ensure_table(self) -> None:
        """Ensure the session table exists in a thread-safe manner."""
        # Fast path
        if self._table_ready or not self.create_table_if_missing:
            return

        with self._table_lock:
            # Double-check after acquiring lock
            if self._table_ready:
                return
            try:
                SessionRecord.metadata.create_all(
                    bind=self.engine,
                    tables=[SessionRecord.__table__],
                    checkfirst=True,  # Explicit to avoid redundant DDL
                )
            except (DBAPIError, PoolTimeoutError) as e:
                logger.error(f"Failed to initialize session table: {e}")
                raise StoreUnavailable(f"Could not create session table: {e}") from e
            self._table_ready = True
            logger.debug(
                "Session table initialized",
                extra={"table": SessionRecord.__tablename__},
            )

    @contextmanager
    def _db(self) -> Generator[Session, None, None]:
        """Open a DB session, translating driver failures into StoreUnavailable."""
        self._ensure_table()
        with get_db_sync(self.engine) as db:
            try:
                yield db
            except (DBAPIError, PoolTimeoutError) as e:
                db.rollback()
                logger.warning(f"Session database operation failed: {type(e).__name__}: {e}")
                raise StoreUnavailable(str(e)) from e

    @staticmethod
    def _encode(session_id: str, data: Dict[str, Any]) -> str:
        try:
            return SessionPayload(data=dict(data)).model_dump_json()
        except (PydanticSerializationError, ValidationError) as e:
            raise MalformedPayload(
                f"Session {short_id(session_id)} payload is not serializable: {e}"
            ) from e

    @staticmethod
    def _decode(session_id: str, raw: str) -> SessionPayload:
        try:
            return SessionPayload.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedPayload(
                f"Session {short_id(session_id)} payload could not be decoded: {e.error_count()} error(s)"
            ) from e

    def load(self, session_id: str, now: Optional[datetime] = None) -> Optional[StoredSession]:
        """
        Return the live session for ``session_id``.

        Returns None when no row exists or the row is past its expiry, whether
        or not the sweeper has removed it yet.

        Raises:
            StoreUnavailable: If the database cannot be queried
            MalformedPayload: If the stored payload cannot be decoded
        """
        if not session_id:
            return None
        now = now or self.now()
        with self._db() as db:
            row = db.execute(
                select(SessionRecord.payload, SessionRecord.expires_at).where(
                    SessionRecord.id == session_id,
                    SessionRecord.expires_at > now,
                )
            ).first()
        if row is None:
            return None
        payload = self._decode(session_id, row.payload)
        return StoredSession(id=session_id, data=payload.data, expires_at=row.expires_at)

    def save(
        self,
        session_id: str,
        data: Dict[str, Any],
        ttl: TTL,
        now: Optional[datetime] = None,
    ) -> StoredSession:
        """
        Insert or replace a session, setting ``expires_at = now + ttl``.

        Concurrent saves for the same id are resolved last-write-wins.

        Raises:
            ValueError: If ttl is not positive
            MalformedPayload: If data cannot be serialized
            StoreUnavailable: If the database cannot be written
        """
        expires_at = (now or self.now()) + _as_timedelta(ttl)
        raw = self._encode(session_id, data)

        with self._db() as db:
            dialect = self.engine.dialect.name
            if dialect in ("postgresql", "sqlite"):
                self._upsert(db, dialect, session_id, raw, expires_at)
            else:
                self._update_or_insert(db, session_id, raw, expires_at)
            db.commit()

        logger.debug(f"Saved session {short_id(session_id)} until {expires_at.isoformat()}")
        return StoredSession(id=session_id, data=dict(data), expires_at=expires_at)

    @staticmethod
    def _upsert(db: Session, dialect: str, session_id: str, raw: str, expires_at: datetime) -> None:
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert

        stmt = insert(SessionRecord).values(id=session_id, payload=raw, expires_at=expires_at)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={"payload": stmt.excluded.payload, "expires_at": stmt.excluded.expires_at},
        )
        db.execute(stmt)

    @staticmethod
    def _update_or_insert(db: Session, session_id: str, raw: str, expires_at: datetime) -> None:
        """UPDATE-then-INSERT for dialects without ON CONFLICT support."""
        values = {"payload": raw, "expires_at": expires_at}
        result = db.execute(
            update(SessionRecord).where(SessionRecord.id == session_id).values(**values)
        )
        if result.rowcount:
            return

        try:
            db.add(SessionRecord(id=session_id, **values))
            db.flush()
        except IntegrityError:
            # Another writer inserted between our UPDATE and INSERT
            db.rollback()
            logger.debug(f"Insert raced for session {short_id(session_id)}, retrying update")
            result = db.execute(
                update(SessionRecord).where(SessionRecord.id == session_id).values(**values)
            )
            if result.rowcount == 0:
                # The competing row vanished again (destroyed or swept) before the retry
                raise StoreUnavailable(f"Failed to insert or update session {short_id(session_id)}")

    def touch(self, session_id: str, ttl: TTL, now: Optional[datetime] = None) -> bool:
        """
        Extend the expiry of a live session without rewriting its payload.

        An expired row is never renewed. Returns True if a row was updated.
        """
        if not session_id:
            return False
        now = now or self.now()
        expires_at = now + _as_timedelta(ttl)
        with self._db() as db:
            result = db.execute(
                update(SessionRecord)
                .where(SessionRecord.id == session_id, SessionRecord.expires_at > now)
                .values(expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        return bool(result.rowcount)

    def destroy(self, session_id: str) -> None:
        """Remove a session. Destroying an unknown id is not an error."""
        if not session_id:
            return
        with self._db() as db:
            db.execute(
                delete(SessionRecord)
                .where(SessionRecord.id == session_id)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        logger.debug(f"Destroyed session {short_id(session_id)}")

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every row with ``expires_at <= now`` in a single statement.

        The cutoff is fixed when the sweep starts, so rows saved or renewed
        while it runs carry a later expiry and survive.

        Returns:
            Number of rows removed
        """
        cutoff = now or self.now()
        with self._db() as db:
            result = db.execute(
                delete(SessionRecord)
                .where(SessionRecord.expires_at <= cutoff)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        return result.rowcount or 0

    def count(self) -> int:
        """Number of physical rows, expired or not."""
        with self._db() as db:
            return db.scalar(select(func.count()).select_from(SessionRecord)) or 0


# Process-wide store used by the application when none is injected
_default_store: Optional[SessionStore] = None
_default_store_lock = Lock()


def get_session_store() -> SessionStore:
    """Return the store bound to the configured database engine."""
    global _default_store
    if _default_store is None:
        with _default_store_lock:
            if _default_store is None:
                from storefront.core.config import settings

                _default_store = SessionStore(
                    create_table_if_missing=settings.SESSION_CREATE_TABLE_IF_MISSING
                )
    return _default_store
