"""
Batching of small media frames before they are sent through the transcoder.

Twilio delivers audio in 20ms frames (160 bytes of mu-law). Writing each one to
the transcoder separately costs a pipe round trip per frame, so frames are
accumulated and released as one batch once a size threshold is reached.
"""

import logging
from typing import Optional

from media_bridge.bot.transcoder import TranscodingPipe
from media_bridge.config.constants import BUFFER_THRESHOLD, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class FrameBatcher:
    """
    Accumulates raw frames for one session and converts them in batches.

    The buffer is only ever flushed whole, once its length reaches the
    threshold. Frames are released in arrival order.
    """

    def __init__(self, pipe: TranscodingPipe, threshold: int = BUFFER_THRESHOLD):
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.pipe = pipe
        self.threshold = threshold
        self._buffer = bytearray()
        self.frames_accepted = 0
        self.bytes_accepted = 0
        self.batches_flushed = 0

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    async def accept(self, frame: bytes) -> Optional[bytes]:
        """
        Add a frame to the buffer, converting the whole buffer once it is full.

        Args:
            frame: Raw provider-encoded audio from one media event

        Returns:
            None while the buffer is below the threshold, otherwise the
            transcoder output for the batch (b"" means no output yet)

        Raises:
            PipeWriteError: If the batch could not be written to the transcoder
        """
        self._buffer.extend(frame)
        self.frames_accepted += 1
        self.bytes_accepted += len(frame)

        if len(self._buffer) < self.threshold:
            return None
        return await self._convert_buffer()

    async def flush(self) -> Optional[bytes]:
        """
        Convert whatever is buffered regardless of the threshold.

        Returns:
            None if the buffer is empty, otherwise the transcoder output
        """
        if not self._buffer:
            return None
        logger.debug(f"Force-flushing {len(self._buffer)} buffered bytes")
        return await self._convert_buffer()

    def discard(self) -> int:
        """Drop buffered bytes without converting them and return how many were dropped."""
        dropped = len(self._buffer)
        self._buffer.clear()
        return dropped

    async def _convert_buffer(self) -> bytes:
        batch = bytes(self._buffer)
        self._buffer.clear()
        self.batches_flushed += 1
        return await self.pipe.convert(batch)
