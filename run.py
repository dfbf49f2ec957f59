#!/usr/bin/env python3
"""
Branch Finance Entry Point

Starts the FastAPI server with the obligations engine.
"""

import sys

from branch_finance.config import get_config
from branch_finance.logging_config import setup_logging
from branch_finance.api import run_server


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    logger.info(f"Starting Branch Finance API on {config.api_host}:{config.api_port}")

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            workers=config.api_workers
        )
    except KeyboardInterrupt:
        logger.info("Shutting down Branch Finance API")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
