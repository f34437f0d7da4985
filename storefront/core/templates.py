"""Shared template configuration for web routes"""

from pathlib import Path
from typing import Any, Dict

from fastapi import Request
from fastapi.templating import Jinja2Templates

from storefront.core.config import settings

# Package directory
PACKAGE_DIR = Path(__file__).parent.parent


def app_globals(request: Request) -> Dict[str, Any]:
    """Variables available to every template without passing them from each route"""
    config = getattr(request.app.state, "settings", settings)
    return {
        "environment": config.environment_name,
        "dev_mode": config.DEV_MODE,
        "site_name": config.SITE_NAME,
    }


# Create shared templates instance
templates = Jinja2Templates(
    directory=str(PACKAGE_DIR / "templates"),
    context_processors=[app_globals],
)

# Export for use in routes
__all__ = ["templates", "PACKAGE_DIR"]
