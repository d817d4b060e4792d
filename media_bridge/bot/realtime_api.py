import asyncio
import base64
import json
import logging
import time
import traceback
from typing import Any, Dict, Optional

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
    InvalidHandshake,
)

from media_bridge.bot.recognition import RecognitionSink
from media_bridge.config.constants import DEFAULT_TRANSCRIBE_MODEL, LOGGER_NAME
from media_bridge.exceptions import RecognitionError

logger = logging.getLogger(LOGGER_NAME)

REALTIME_URL = "wss://api.openai.com/v1/realtime?intent=transcription"
CONNECTION_TIMEOUT = 30  # seconds
SEND_TIMEOUT = 5.0  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB
WS_MAX_QUEUE = 32
WS_PING_INTERVAL = 5  # seconds

# The Realtime API only accepts 24kHz mono pcm16
REALTIME_SAMPLE_RATE = 24000


class RealtimeTranscriptionClient(RecognitionSink):
    """
    Recognition sink backed by an OpenAI Realtime API transcription session.

    Audio is appended to the server-side input buffer and segmented by server
    VAD. Transcript deltas are reported as partial results, completed items as
    final results. The connection is never re-established: if it drops, the
    cancelled handler is notified and the call's transcription ends.
    """

    sample_rate = REALTIME_SAMPLE_RATE

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_TRANSCRIBE_MODEL,
        language: Optional[str] = None,
        url: str = REALTIME_URL,
    ):
        super().__init__()
        self.api_key = api_key
        self.model = model
        self.language = language
        self.url = url
        self.ws = None
        self._recv_task: Optional[asyncio.Task] = None
        self._connection_active = False
        self._is_closing = False
        self._partials: Dict[str, str] = {}
        logger.info(f"RealtimeTranscriptionClient initialized with model: {model}")

    def session_config(self) -> Dict[str, Any]:
        """Build the transcription_session.update payload."""
        transcription: Dict[str, Any] = {"model": self.model}
        if self.language:
            transcription["language"] = self.language
        return {
            "type": "transcription_session.update",
            "session": {
                "input_audio_format": "pcm16",
                "input_audio_transcription": transcription,
                "turn_detection": {"type": "server_vad"},
            },
        }

    async def start(self) -> None:
        """
        Connect to the Realtime API and configure the transcription session.

        Raises:
            RecognitionError: If no API key is configured or the connection fails
        """
        if not self.api_key:
            logger.error("OPENAI_API_KEY environment variable not set")
            raise RecognitionError("OPENAI_API_KEY environment variable not set")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        try:
            logger.info(f"Connecting to OpenAI Realtime API for transcription with model: {self.model}")
            connection_start = time.time()
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=10,
                    compression=None,
                    additional_headers=headers,
                ),
                timeout=CONNECTION_TIMEOUT,
            )
            logger.debug(f"WebSocket connection established in {time.time() - connection_start:.2f} seconds")
            await self.ws.send(json.dumps(self.session_config()))
        except asyncio.TimeoutError as e:
            raise RecognitionError(
                f"Timeout while connecting to OpenAI Realtime API (after {CONNECTION_TIMEOUT}s)"
            ) from e
        except (OSError, ConnectionClosed, InvalidHandshake) as e:
            raise RecognitionError(f"Failed to connect to OpenAI Realtime API: {e}") from e

        self._connection_active = True
        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info("Transcription session started")

    async def push_audio(self, pcm: bytes) -> None:
        """
        Append PCM to the server-side input audio buffer.

        Audio pushed after the connection dropped is discarded.
        """
        if not self._connection_active or self.ws is None:
            logger.debug("Dropping audio - transcription connection not active")
            return

        message = {
            "type": "input_audio_buffer.append",
            "audio": base64.b64encode(pcm).decode("utf-8"),
        }
        try:
            await asyncio.wait_for(self.ws.send(json.dumps(message)), timeout=SEND_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Timeout while sending audio to OpenAI")
        except ConnectionClosed as e:
            logger.warning(f"Connection closed while sending audio: {e}")
            self._connection_active = False

    async def stop(self) -> None:
        """Close the WebSocket connection and cancel the receive task."""
        if self._is_closing:
            return
        logger.info("Closing OpenAI transcription client")
        self._is_closing = True
        self._connection_active = False

        if self._recv_task:
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass
            self._recv_task = None

        if self.ws:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"Error closing OpenAI WebSocket: {e}")
            self.ws = None

    async def _recv_loop(self) -> None:
        """Receive server events and dispatch transcripts to the registered handlers."""
        reason = None
        try:
            async for message in self.ws:
                if isinstance(message, bytes):
                    logger.debug(f"Ignoring binary message of size {len(message)} bytes")
                    continue
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON: {message[:100]}...")
                    continue
                await self.handle_event(data)
        except ConnectionClosedOK:
            logger.info("Transcription connection closed normally")
        except ConnectionClosedError as e:
            logger.warning(f"Transcription connection closed unexpectedly: {e}")
            reason = f"connection lost: {e}"
        except Exception as e:
            logger.error(f"Error in transcription receive loop: {e}")
            logger.debug(f"Receive loop error details: {traceback.format_exc()}")
            reason = f"receive error: {e}"

        self._connection_active = False
        if self._is_closing:
            return
        await self._notify(self._on_cancelled, reason or "connection closed by server")

    async def handle_event(self, data: Dict[str, Any]) -> None:
        """Dispatch one Realtime API server event."""
        event_type = data.get("type")

        if event_type == "conversation.item.input_audio_transcription.delta":
            item_id = data.get("item_id", "")
            text = self._partials.get(item_id, "") + data.get("delta", "")
            self._partials[item_id] = text
            if text:
                await self._notify(self._on_partial, text)

        elif event_type == "conversation.item.input_audio_transcription.completed":
            self._partials.pop(data.get("item_id", ""), None)
            transcript = data.get("transcript", "")
            if transcript:
                await self._notify(self._on_final, transcript)

        elif event_type == "conversation.item.input_audio_transcription.failed":
            error = data.get("error") or {}
            logger.warning(f"Transcription failed for item {data.get('item_id')}: {error.get('message')}")

        elif event_type == "error":
            error = data.get("error") or {}
            logger.error(f"Received error from OpenAI: {error.get('message', data)}")

        else:
            logger.debug(f"Received message of type: {event_type or 'unknown'}")
