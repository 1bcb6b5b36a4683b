"""Main entry point for netpulse."""

import sys

import uvicorn
from pydantic import ValidationError

from .api import create_app
from .config import get_settings
from .logging import configure_logging, get_logger

log = get_logger("main")


def main() -> None:
    """Validate configuration, then serve the health API and run the monitor."""
    configure_logging()

    try:
        settings = get_settings()
    except ValidationError as e:
        log.critical(
            "config_invalid",
            errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in e.errors()
            ],
        )
        sys.exit(1)

    configure_logging(settings.logging)

    uvicorn.run(
        create_app(),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
