from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from storefront.core.config import Settings, settings


# Determine database-specific connection arguments
def get_connect_args(config: Optional[Settings] = None) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    config = config or settings
    if config.DATABASE_URL.startswith("sqlite"):
        # SQLite needs check_same_thread=False for the threadpool used by the middleware
        return {"check_same_thread": False}
    if config.DATABASE_URL.startswith("postgresql"):
        args: Dict[str, Any] = {}
        if config.DB_SSL_MODE:
            args["sslmode"] = config.DB_SSL_MODE
        if config.DB_SSL_ROOT_CERT:
            args["sslrootcert"] = config.DB_SSL_ROOT_CERT
        return args
    return {}


def build_engine(config: Optional[Settings] = None) -> Engine:
    """Create a database engine with appropriate connection args"""
    config = config or settings
    return create_engine(
        config.DATABASE_URL,
        connect_args=get_connect_args(config),
        pool_pre_ping=config.DB_POOL_PRE_PING,
    )


engine = build_engine()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_sync(bind: Optional[Engine] = None) -> Generator[Session, None, None]:
    """Get a synchronous DB session with proper resource management"""
    db = SessionLocal(bind=bind) if bind is not None else SessionLocal()
    try:
        yield db
    finally:
        db.close()
