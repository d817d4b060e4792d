"""
Recognition sink interface consumed by the bridge session.

A recognition sink accepts a push-style stream of linear PCM and reports
transcripts asynchronously. Handlers are registered before the stream is
started and are invoked from the sink's own task, so they run concurrently
with the session that pushes audio.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from media_bridge.config.constants import (
    DEFAULT_TRANSCRIBE_MODEL,
    LOGGER_NAME,
    OUTPUT_SAMPLE_RATE,
    RECOGNITION_ENGINE,
)

logger = logging.getLogger(LOGGER_NAME)

TextHandler = Callable[[str], Awaitable[None]]


class RecognitionSink(ABC):
    """
    Abstract streaming speech recognizer.

    Implementations declare the PCM sample rate they expect in ``sample_rate``;
    the session configures the transcoder output to match.
    """

    sample_rate: int = OUTPUT_SAMPLE_RATE

    def __init__(self):
        self._on_partial: Optional[TextHandler] = None
        self._on_final: Optional[TextHandler] = None
        self._on_cancelled: Optional[TextHandler] = None

    def set_handlers(
        self,
        on_partial: Optional[TextHandler] = None,
        on_final: Optional[TextHandler] = None,
        on_cancelled: Optional[TextHandler] = None,
    ) -> None:
        """
        Register the asynchronous notification handlers.

        Args:
            on_partial: Called with interim hypotheses while speech is ongoing
            on_final: Called with each finalized utterance
            on_cancelled: Called with a reason when recognition stops unexpectedly
        """
        self._on_partial = on_partial
        self._on_final = on_final
        self._on_cancelled = on_cancelled

    @abstractmethod
    async def start(self) -> None:
        """Open the recognition stream. Raises RecognitionError on failure."""
        raise NotImplementedError

    @abstractmethod
    async def push_audio(self, pcm: bytes) -> None:
        """Feed converted PCM into the recognition stream."""
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """Close the recognition stream. Must be safe to call more than once."""
        raise NotImplementedError

    async def _notify(self, handler: Optional[TextHandler], text: str) -> None:
        if handler is None:
            return
        try:
            await handler(text)
        except Exception as e:
            logger.error(f"Error in recognition handler: {e}", exc_info=True)


class LoggingRecognitionSink(RecognitionSink):
    """Offline sink that only counts and logs the audio it receives."""

    def __init__(self, sample_rate: int = OUTPUT_SAMPLE_RATE):
        super().__init__()
        self.sample_rate = sample_rate
        self.bytes_received = 0
        self.started = False

    async def start(self) -> None:
        self.started = True
        logger.info(f"Logging recognition sink started ({self.sample_rate}Hz)")

    async def push_audio(self, pcm: bytes) -> None:
        self.bytes_received += len(pcm)
        logger.debug(f"Recognition sink received {len(pcm)} bytes")

    async def stop(self) -> None:
        if not self.started:
            return
        self.started = False
        seconds = self.bytes_received / (2 * self.sample_rate)
        logger.info(
            f"Logging recognition sink stopped after {self.bytes_received} bytes "
            f"(~{seconds:.1f}s of audio)"
        )


def create_recognition_sink(engine: str = RECOGNITION_ENGINE) -> RecognitionSink:
    """
    Build the recognition sink selected by configuration.

    Args:
        engine: ``openai`` for the OpenAI Realtime transcription client or
            ``log`` for the offline logging sink

    Returns:
        A new, not yet started sink
    """
    if engine == "log":
        return LoggingRecognitionSink()
    if engine == "openai":
        from media_bridge.bot.realtime_api import RealtimeTranscriptionClient

        return RealtimeTranscriptionClient(
            api_key=os.getenv("OPENAI_API_KEY"),
            model=os.getenv("OPENAI_TRANSCRIBE_MODEL", DEFAULT_TRANSCRIBE_MODEL),
            language=os.getenv("RECOGNITION_LANGUAGE") or None,
        )
    raise ValueError(f"Unknown recognition engine: {engine}")
