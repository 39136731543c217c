"""API server entry point (``docfields-api``)."""

import uvicorn

from docfields.api.app import app
from docfields.utils.config import load_config
from docfields.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    """Start the API server on the configured address."""
    config = load_config()
    setup_logging(config.log_level)
    logger.info("Starting API server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
