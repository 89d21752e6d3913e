"""Entry point for the counsel service."""

import logging

import uvicorn

from counsel_service.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "counsel_service.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )
