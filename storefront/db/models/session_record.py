from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.config import settings
from storefront.db.base import Base


class SessionRecord(Base):
    """Server-side session row keyed by the id carried in the session cookie."""

    __tablename__ = settings.SESSION_TABLE_NAME

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    # JSON envelope, see storefront.core.schemas.session.SessionPayload
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    # Naive UTC
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<SessionRecord(id={self.id[:8]!r}..., expires_at={self.expires_at!r})>"
