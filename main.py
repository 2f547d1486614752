"""Application entry point: ``python main.py`` or ``uvicorn main:app``."""

from __future__ import annotations

import uvicorn

from investrisk.api import create_api_app
from investrisk.core.config import settings


app = create_api_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
