"""
Configuration module for the media bridge application.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based configuration.

Key components:
- constants: Defines application-wide constants used across modules, including
  Twilio event names, audio formats, transcoder tunables and close codes.
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.

Usage examples:
```python
# Import and use constants
from media_bridge.config.constants import LOGGER_NAME, BUFFER_THRESHOLD

# Set up logging for your module
from media_bridge.config.logging_config import configure_logging
logger = configure_logging()
logger.info("Application started")
```
"""

# Config module initialization
