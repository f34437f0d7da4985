"""Database models. Import modules here so their tables register on Base.metadata."""

from storefront.db.models import session_record as _model_session_record  # noqa: F401
