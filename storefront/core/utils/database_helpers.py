"""
Database helper utilities for Storefront.

Provides database-agnostic checks for both SQLite and PostgreSQL.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


def get_database_type(engine: Engine) -> str:
    """
    Get the database type from the engine dialect.

    Returns:
        str: Database type ('sqlite', 'postgresql', etc.)
    """
    return engine.dialect.name


def check_database_health(engine: Engine, table_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Perform database health check.

    Args:
        engine: Engine to probe
        table_name: Optional table whose presence is reported

    Returns:
        Dict containing health status and details
    """
    health: Dict[str, Any] = {
        "status": "healthy",
        "database_type": get_database_type(engine),
        "connected": False,
        "table_present": None,
        "last_error": None,
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            health["connected"] = True
            if table_name:
                health["table_present"] = inspect(conn).has_table(table_name)
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health["status"] = "unhealthy"
        health["last_error"] = str(e)

    return health
