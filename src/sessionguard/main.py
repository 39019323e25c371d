#!/usr/bin/env python3
"""
Entry point for the SessionGuard account service (HTTP API + live channel)
"""

import sys
import logging
import argparse
import uvicorn
from sessionguard.auth_api import create_app
from sessionguard.utils.config import Config, DEFAULT_JWT_SECRET

logger = logging.getLogger(__name__)


def setup_logging(level: str = None):
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the SessionGuard account service")
    parser.add_argument("--host", default=Config.HOST)
    parser.add_argument("--port", type=int, default=Config.PORT)
    parser.add_argument("--log-level", default=Config.LOG_LEVEL)
    return parser.parse_args(argv)


def secret_is_insecure(secret: str) -> bool:
    return not secret or secret == DEFAULT_JWT_SECRET


def main(argv=None):
    """Build the services once and serve HTTP and WebSocket on one port"""
    args = parse_args(argv)
    setup_logging(args.log_level)

    if secret_is_insecure(Config.JWT_SECRET_KEY):
        logger.error("JWT_SECRET_KEY is not set; refusing to sign tokens with the default")
        sys.exit(1)

    app = create_app()
    logger.info(f"Starting SessionGuard on http://{args.host}:{args.port}")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        ws="websockets",
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)
