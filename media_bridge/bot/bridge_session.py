"""
Per-call bridge between a Twilio media stream and a recognition sink.

A BridgeSession owns the call's transcoder, frame batcher and recognition sink,
and walks the stream state machine as events arrive:

    IDLE -> CONNECTED -> STREAMING -> STOPPED
                 any non-terminal state -> FAILED

Transcoder and recognition failures are fatal to the session only: recognition
is stopped, the transcoder is released and the WebSocket is closed with an
error status. Nothing is retried.
"""

import logging
import time
import uuid
from enum import Enum
from typing import Callable, List, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from media_bridge.bot.frame_batcher import FrameBatcher
from media_bridge.bot.recognition import RecognitionSink
from media_bridge.bot.transcoder import AudioFormat, TranscodingPipe
from media_bridge.config.constants import (
    BUFFER_THRESHOLD,
    FLUSH_ON_STOP,
    LOGGER_NAME,
    OUTPUT_CHANNELS,
    WS_CLOSE_INTERNAL_ERROR,
    WS_CLOSE_NORMAL,
)
from media_bridge.exceptions import (
    PipeWriteError,
    RecognitionError,
    TranscodingPipeError,
)
from media_bridge.models.message_schemas import MediaFormat, StartMessage

logger = logging.getLogger(LOGGER_NAME)


class SessionState(str, Enum):
    """Lifecycle states of a bridge session."""

    IDLE = "idle"
    CONNECTED = "connected"
    STREAMING = "streaming"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.STOPPED, SessionState.FAILED)


class BridgeSession:
    """
    State and resources for one call, from WebSocket accept to close.

    Only the task running the WebSocket receive loop calls into a session, so
    the batch buffer needs no locking. Recognition handlers run on the sink's
    own task and only record and log transcripts.
    """

    def __init__(
        self,
        websocket: WebSocket,
        recognition_sink: RecognitionSink,
        pipe_factory: Callable[[], TranscodingPipe] = TranscodingPipe,
        threshold: int = BUFFER_THRESHOLD,
        flush_on_stop: bool = FLUSH_ON_STOP,
    ):
        self.session_id = str(uuid.uuid4())
        self.websocket = websocket
        self.recognition_sink = recognition_sink
        self.pipe_factory = pipe_factory
        self.threshold = threshold
        self.flush_on_stop = flush_on_stop

        self.state = SessionState.IDLE
        self.protocol: Optional[str] = None
        self.protocol_version: Optional[str] = None
        self.stream_sid: Optional[str] = None
        self.call_sid: Optional[str] = None
        self.account_sid: Optional[str] = None
        self.media_format: Optional[MediaFormat] = None

        self.pipe: Optional[TranscodingPipe] = None
        self.batcher: Optional[FrameBatcher] = None
        self._recognition_started = False
        self._closed = False

        self.bytes_forwarded = 0
        self.last_convert_latency_ms: Optional[float] = None
        self.partial_transcript = ""
        self.final_transcripts: List[str] = []
        self.cancellation_reason: Optional[str] = None
        self.failure_reason: Optional[str] = None

    @property
    def log_id(self) -> str:
        return self.stream_sid or self.session_id

    # Protocol events

    def on_connected(self, protocol: Optional[str], version: Optional[str]) -> None:
        """Record the provider protocol announced by the connected event."""
        if self.state is not SessionState.IDLE:
            logger.warning(f"Ignoring connected event in state {self.state.value} for session: {self.log_id}")
            return
        self.protocol = protocol
        self.protocol_version = version
        self.state = SessionState.CONNECTED
        logger.info(f"Media stream connected (protocol={protocol}, version={version})")

    async def start_stream(self, message: StartMessage) -> None:
        """
        Capture stream metadata and bring up the transcoder and recognition sink.

        A transcoder or recognition start failure fails the session.
        """
        if self.state not in (SessionState.IDLE, SessionState.CONNECTED):
            logger.warning(f"Ignoring start event in state {self.state.value} for session: {self.log_id}")
            return

        metadata = message.start
        self.stream_sid = message.stream_sid
        self.call_sid = metadata.callSid
        self.account_sid = metadata.accountSid
        self.media_format = metadata.mediaFormat
        logger.info(
            f"Media stream started: streamSid={self.stream_sid}, callSid={self.call_sid}, "
            f"accountSid={self.account_sid}, encoding={self.media_format.encoding}, "
            f"sampleRate={self.media_format.sampleRate}, channels={self.media_format.channels}"
        )

        input_format = AudioFormat(
            encoding=self.media_format.ffmpeg_format,
            sample_rate=self.media_format.sampleRate,
            channels=self.media_format.channels,
        )
        output_format = AudioFormat(
            encoding="s16le",
            sample_rate=self.recognition_sink.sample_rate,
            channels=OUTPUT_CHANNELS,
        )

        self.pipe = self.pipe_factory()
        try:
            await self.pipe.start(input_format, output_format)
            self.batcher = FrameBatcher(self.pipe, self.threshold)

            self.recognition_sink.set_handlers(
                on_partial=self._handle_partial,
                on_final=self._handle_final,
                on_cancelled=self._handle_cancelled,
            )
            await self.recognition_sink.start()
            self._recognition_started = True
        except (TranscodingPipeError, RecognitionError) as e:
            await self.fail(str(e))
            return

        self.state = SessionState.STREAMING

    async def process_media(self, frame: bytes) -> None:
        """
        Batch one decoded frame and forward any converted audio to recognition.

        A broken transcoder pipe fails the session; no further conversion is attempted.
        """
        if self.state is not SessionState.STREAMING:
            logger.debug(f"Ignoring media frame in state {self.state.value} for session: {self.log_id}")
            return

        start_time = time.time()
        try:
            converted = await self.batcher.accept(frame)
        except PipeWriteError as e:
            await self.fail(str(e))
            return

        if converted is None:
            return
        self.last_convert_latency_ms = (time.time() - start_time) * 1000
        await self._forward(converted)

    async def stop_stream(self) -> None:
        """Apply the trailing-audio policy and shut the transcoder down."""
        if self.state is not SessionState.STREAMING:
            logger.warning(f"Ignoring stop event in state {self.state.value} for session: {self.log_id}")
            return

        logger.info(f"Media stream stopped: streamSid={self.stream_sid}")
        try:
            if self.flush_on_stop:
                converted = await self.batcher.flush()
                if converted:
                    await self._forward(converted)
                tail = await self.pipe.drain_and_stop(keep_output=True)
                if tail:
                    await self._forward(tail)
            else:
                dropped = self.batcher.discard()
                if dropped:
                    logger.info(f"Discarding {dropped} unconverted bytes at end of stream: {self.log_id}")
                await self.pipe.drain_and_stop()
        except PipeWriteError as e:
            await self.fail(str(e))
            return

        self.state = SessionState.STOPPED

    def on_transport_closed(self) -> None:
        """Record that the provider closed the WebSocket."""
        if not self.state.is_terminal:
            self.state = SessionState.STOPPED

    # Failure and teardown

    async def fail(self, reason: str) -> None:
        """Move to FAILED and release everything, closing the socket with an error status."""
        logger.error(f"Session failed for {self.log_id}: {reason}")
        self.failure_reason = reason
        self.state = SessionState.FAILED
        await self.close(code=WS_CLOSE_INTERNAL_ERROR, reason="Transcoding failure")

    async def close(self, code: int = WS_CLOSE_NORMAL, reason: Optional[str] = None) -> None:
        """
        Release the transcoder and recognition sink and close the WebSocket.

        Runs on every exit path and is safe to call repeatedly; only the first
        call does any work.
        """
        if self._closed:
            return
        self._closed = True

        try:
            if self.pipe is not None:
                try:
                    await self.pipe.drain_and_stop()
                except Exception as e:
                    logger.error(f"Error stopping transcoder for {self.log_id}: {e}", exc_info=True)

            if self._recognition_started:
                try:
                    await self.recognition_sink.stop()
                except Exception as e:
                    logger.error(f"Error stopping recognition for {self.log_id}: {e}", exc_info=True)
        finally:
            await self._close_websocket(code, reason)

        logger.info(
            f"Session closed for {self.log_id}: state={self.state.value}, "
            f"{self.bytes_forwarded} bytes forwarded, "
            f"{len(self.final_transcripts)} final transcripts"
        )

    async def _close_websocket(self, code: int, reason: Optional[str]) -> None:
        if (
            self.websocket.application_state == WebSocketState.DISCONNECTED
            or self.websocket.client_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError as e:
            logger.debug(f"WebSocket already closed for {self.log_id}: {e}")

    async def _forward(self, converted: bytes) -> None:
        if not converted:
            return
        self.bytes_forwarded += len(converted)
        await self.recognition_sink.push_audio(converted)

    # Recognition handlers

    async def _handle_partial(self, text: str) -> None:
        self.partial_transcript = text
        logger.info(f"Recognizing [{self.log_id}]: {text}")

    async def _handle_final(self, text: str) -> None:
        self.partial_transcript = ""
        self.final_transcripts.append(text)
        logger.info(f"Final result [{self.log_id}]: {text}")

    async def _handle_cancelled(self, reason: str) -> None:
        self.cancellation_reason = reason
        logger.warning(f"Recognition canceled [{self.log_id}]: {reason}")
