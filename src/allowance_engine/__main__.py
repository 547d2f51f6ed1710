"""Entry point for running the application with uvicorn."""

import uvicorn

from allowance_engine.config import settings
from allowance_engine.logging_config import configure_logging


def main() -> None:
    """Run the application."""
    configure_logging()
    uvicorn.run(
        "allowance_engine.api.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_config=None,
    )


if __name__ == "__main__":
    main()
