"""TikTok Shop VTEX Bridge - Main Entry Point."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env before the logger reads LOG_LEVEL / LOG_DIR at import time
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)

from tts_vtex_bridge.config.settings import settings  # noqa: E402
from tts_vtex_bridge.server.app import create_app  # noqa: E402

# Create FastAPI application
app = create_app()

if __name__ == "__main__":
    import uvicorn

    reload = os.getenv("RELOAD", "false").lower() == "true"

    # The order webhook waits out the dispatch settle delay, so uvicorn gets
    # a generous graceful shutdown window
    uvicorn.run(
        "tts_vtex_bridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=120,
        timeout_keep_alive=5,
        access_log=False,  # structured logging instead
    )
