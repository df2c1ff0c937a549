import logging
import sys

import uvicorn

from rewards_api.config import get_settings
from rewards_api.errors import NotConfiguredError
from rewards_api.logging_config import setup_logging

logger = logging.getLogger("rewards_api")


def main() -> int:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    try:
        settings.check_startup()
    except NotConfiguredError as exc:
        logger.critical("Refusing to start: %s", exc.message)
        return 1

    logger.info("Server running on port %s", settings.PORT)
    uvicorn.run("rewards_api.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
