"""
Luhive Events: Entry Point.

Single entry point: `python main.py` starts the API server.
"""

import logging
import os

from luhive.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = False) -> None:
    import uvicorn

    if reload:
        uvicorn.run("luhive.api.app:app", host=host, port=port, reload=True, reload_dirs=["luhive"])
    else:
        from luhive.api.app import app

        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        reload=os.getenv("RELOAD", "").lower() in ("1", "true", "yes"),
    )
