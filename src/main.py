"""Main entry point for the API server."""

import uvicorn

from src.config import get_settings


def run() -> None:
    """Serve the forms API with uvicorn (HOST / PORT from settings)."""
    settings = get_settings()
    uvicorn.run(
        "src.api.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
