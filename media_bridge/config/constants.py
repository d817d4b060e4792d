"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for configuration values and making it easier to
maintain consistent naming throughout the codebase. Tunables that operators may
need to change per deployment are read from environment variables.
"""

import os
from pathlib import Path

import dotenv

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

# Logger name used throughout the application
LOGGER_NAME = "media_bridge"

# Twilio Media Streams event names
EVENT_CONNECTED = "connected"
EVENT_START = "start"
EVENT_MEDIA = "media"
EVENT_STOP = "stop"
EVENT_MARK = "mark"
EVENT_CLEAR = "clear"
EVENT_DTMF = "dtmf"

# Provider-native audio format (Twilio always streams 8kHz mono mu-law)
INPUT_ENCODING = "mulaw"
INPUT_SAMPLE_RATE = 8000
INPUT_CHANNELS = 1

# Linear PCM delivered to the recognition sink
OUTPUT_SAMPLE_RATE = 16000
OUTPUT_CHANNELS = 1

# Transcoder process
FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
READ_BUFFER_SIZE = int(os.getenv("READ_BUFFER_SIZE", "4096"))
READ_TIMEOUT_SECONDS = float(os.getenv("READ_TIMEOUT_SECONDS", "0.02"))
DRAIN_TIMEOUT_SECONDS = float(os.getenv("DRAIN_TIMEOUT_SECONDS", "5"))
WRITE_TIMEOUT_SECONDS = float(os.getenv("WRITE_TIMEOUT_SECONDS", "1"))

# Frame batching
BUFFER_THRESHOLD = int(os.getenv("BUFFER_THRESHOLD", "512"))
FLUSH_ON_STOP = os.getenv("FLUSH_ON_STOP", "false").lower() in ("1", "true", "yes")

# Recognition engine
RECOGNITION_ENGINE = os.getenv("RECOGNITION_ENGINE", "openai").lower()
DEFAULT_TRANSCRIBE_MODEL = "gpt-4o-transcribe"

# WebSocket close codes
WS_CLOSE_NORMAL = 1000
WS_CLOSE_GOING_AWAY = 1001
WS_CLOSE_NO_STATUS = 1005
WS_CLOSE_INTERNAL_ERROR = 1011
