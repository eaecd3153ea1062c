"""Local development server runner."""

from __future__ import annotations

import os

import uvicorn

from inventario_core.config import settings


def main() -> None:
    host = os.getenv("APP_HOST", "127.0.0.1")
    port = int(os.getenv("APP_PORT", "8000"))
    log_level = os.getenv("LOG_LEVEL", "info").lower()
    uvicorn.run(
        "services.api:app",
        host=host,
        port=port,
        reload=settings.env == "dev",
        log_level=log_level,
        access_log=True,
    )


if __name__ == "__main__":
    main()
