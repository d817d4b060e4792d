"""
Run script for starting the Twilio Media Bridge server with low-latency settings.

This script configures and starts the FastAPI server with WebSocket settings
suited to continuous realtime audio from Twilio Media Streams.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import os
import shutil
import sys

import uvicorn

from media_bridge.config.constants import FFMPEG_PATH, RECOGNITION_ENGINE
from media_bridge.config.logging_config import configure_logging


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the Twilio Media Bridge server"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8000")),
        help="Port to run the server on (default: 8000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args()


def main():
    """Main entry point for starting the server."""
    args = parse_args()
    logger = configure_logging(args.log_level)

    if shutil.which(FFMPEG_PATH) is None:
        logger.error(f"ffmpeg binary not found: {FFMPEG_PATH}")
        print("Error: ffmpeg is required to transcode call audio")
        print("Install it (e.g. apt-get install -y ffmpeg) or set FFMPEG_PATH")
        sys.exit(1)

    if RECOGNITION_ENGINE == "openai" and not os.getenv("OPENAI_API_KEY"):
        logger.error("OPENAI_API_KEY environment variable not set")
        print("Error: OPENAI_API_KEY is required for the openai recognition engine")
        print("Set it, or use RECOGNITION_ENGINE=log to run without recognition")
        sys.exit(1)

    logger.info(f"Starting server on http://{args.host}:{args.port}")
    logger.info(f"Log level: {args.log_level}")
    logger.info(f"Recognition engine: {RECOGNITION_ENGINE}")

    uvicorn.run(
        "media_bridge.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        http="h11",
        # Disable access logs, we have our own logging
        access_log=False,
        websocket_ping_interval=5,
        websocket_ping_timeout=20,
        reload=os.getenv("ENV", "production").lower() == "development",
    )


if __name__ == "__main__":
    main()
