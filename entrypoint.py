import os

import uvicorn

from constants import (
    FORWARDED_ALLOW_IPS,
    HOST,
    PORT,
    WS_PING_INTERVAL_SECONDS,
    WS_PING_TIMEOUT_SECONDS,
)
from logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def main():
    """Run the signaling server under uvicorn with this project's logging."""
    setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), log_file=os.getenv("LOG_FILE", None))
    logger.info(f"Starting signaling server on {HOST}:{PORT}")
    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        proxy_headers=True,
        forwarded_allow_ips=FORWARDED_ALLOW_IPS,
        ws_ping_interval=WS_PING_INTERVAL_SECONDS,
        ws_ping_timeout=WS_PING_TIMEOUT_SECONDS,
        log_config=None,
    )


if __name__ == "__main__":
    main()
