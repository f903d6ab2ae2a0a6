"""CLI entry point for launching the API with uvicorn."""

import uvicorn

from taskboard.core.config import settings


def main() -> None:
    """Run the API server."""
    uvicorn.run(
        "taskboard.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
