"""
Database-backed session middleware.

Replaces Starlette's cookie-only ``SessionMiddleware``: the cookie carries a
signed, random session id and the payload lives in the session table. The
handler sees ``request.session`` as a mutable mapping; on the way out the
middleware saves, renews or destroys the row and sets the cookie.
"""

import logging
from typing import Any, Optional

from fastapi import Request, Response
from itsdangerous import BadSignature, Signer
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from storefront.core.schemas.session import SessionPayload
from storefront.core.utils.session_store import (
    MalformedPayload,
    SessionStore,
    SessionStoreError,
    StoreUnavailable,
    short_id,
)

logger = logging.getLogger(__name__)


class SessionData(dict):
    """
    Request-scoped session mapping.

    A snapshot of the serialized payload is taken when the session is bound
    to the request. Any difference at the end of the request counts as a
    write, including in-place changes to nested values and ``|=`` updates.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.invalidated = False
        self._snapshot = self._serialize()

    def _serialize(self) -> str:
        return SessionPayload(data=dict(self)).model_dump_json()

    @property
    def modified(self) -> bool:
        """True when the payload differs from what was loaded, or was invalidated."""
        if self.invalidated:
            return True
        try:
            return self._serialize() != self._snapshot
        except (PydanticSerializationError, ValidationError):
            # Unstorable values are a change; the save reports them
            return True

    def invalidate(self) -> None:
        """Drop the session (logout). The row is deleted and the cookie expired."""
        self.clear()
        self.invalidated = True


class DatabaseSessionMiddleware(BaseHTTPMiddleware):
    """Bind a signed session cookie to a row in the session table."""

    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore,
        secret_key: str,
        session_cookie: str = "storefront.sid",
        max_age: int = 24 * 60 * 60,
        https_only: bool = True,
        same_site: str = "lax",
        path: str = "/",
    ) -> None:
        super().__init__(app)
        self.store = store
        self.signer = Signer(secret_key, salt="storefront.session")
        self.session_cookie = session_cookie
        self.max_age = max_age
        self.https_only = https_only
        self.same_site = same_site
        self.path = path

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        cookie_id = self._read_cookie(request)
        live_id: Optional[str] = None
        data: dict = {}

        if cookie_id:
            stored = await self._load(cookie_id)
            if stored is not None:
                live_id = stored.id
                data = stored.data

        session = SessionData(data)
        request.scope["session"] = session

        response = await call_next(request)

        await self._commit(session, live_id, cookie_id is not None, response)
        return response

    def _read_cookie(self, request: Request) -> Optional[str]:
        raw = request.cookies.get(self.session_cookie)
        if not raw:
            return None
        try:
            return self.signer.unsign(raw.encode("utf-8")).decode("utf-8")
        except BadSignature:
            logger.info("Ignoring session cookie with invalid signature")
            return None

    async def _load(self, session_id: str):
        """Load a session, degrading every store failure to "no session"."""
        try:
            return await run_in_threadpool(self.store.load, session_id)
        except MalformedPayload as e:
            logger.warning(f"Discarding unreadable session {short_id(session_id)}: {e}")
        except StoreUnavailable as e:
            logger.error(f"Session store unavailable, continuing without session: {e}")
        return None

    async def _commit(
        self,
        session: SessionData,
        live_id: Optional[str],
        had_cookie: bool,
        response: Response,
    ) -> None:
        try:
            modified = session.modified
            if live_id and (session.invalidated or (modified and not session)):
                await run_in_threadpool(self.store.destroy, live_id)
                live_id = None

            if modified and not session:
                if had_cookie:
                    self._expire_cookie(response)
            elif modified:
                # Missing, expired and invalidated sessions get a fresh id
                session_id = live_id or self.store.new_id()
                await run_in_threadpool(self.store.save, session_id, dict(session), self.max_age)
                self._set_cookie(response, session_id)
            elif live_id:
                if await run_in_threadpool(self.store.touch, live_id, self.max_age):
                    self._set_cookie(response, live_id)
        except (SessionStoreError, ValueError) as e:
            logger.error(f"Failed to persist session, response sent without session cookie: {e}")

    def _set_cookie(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            key=self.session_cookie,
            value=self.signer.sign(session_id.encode("utf-8")).decode("utf-8"),
            max_age=self.max_age,
            path=self.path,
            secure=self.https_only,
            httponly=True,
            samesite=self.same_site,
        )

    def _expire_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.session_cookie,
            path=self.path,
            secure=self.https_only,
            httponly=True,
            samesite=self.same_site,
        )
