#!/usr/bin/env python3
"""Run the session store service"""
import uvicorn

from session_service.core.config import settings


def main() -> None:
    uvicorn.run(
        "session_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )


if __name__ == "__main__":
    main()
