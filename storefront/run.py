#!/usr/bin/env python3
"""Run the Storefront application"""
import logging

import uvicorn

from storefront.core.config import settings
from storefront.core.utils.logging_config import init_application_logging

if __name__ == "__main__":
    init_application_logging()
    logging.getLogger("storefront.run").info(
        f"Server is running on http://{settings.HOST}:{settings.PORT}"
    )
    uvicorn.run(
        "storefront.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEV_MODE,
        log_level="debug" if settings.DEV_MODE else "info",
    )
