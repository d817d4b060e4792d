"""
WebSocket connection manager for Twilio Media Streams.

This module implements the server side of the Media Streams WebSocket protocol,
providing the infrastructure to:
- Accept a media stream connection and create its bridge session
- Classify each inbound text frame by its ``event`` and route it to a handler
- Skip binary frames, which the protocol never sends
- Skip malformed or unknown frames without disturbing the stream
- Guarantee session cleanup on normal close, transport errors and failures

The WebSocketManager class is the central component that connects the provider's
stream to the per-call bridge sessions.
"""

import logging
import socket
from typing import Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from media_bridge.bot.bridge_session import BridgeSession, SessionState
from media_bridge.bot.recognition import RecognitionSink, create_recognition_sink
from media_bridge.config.constants import (
    EVENT_CONNECTED,
    EVENT_DTMF,
    EVENT_MARK,
    EVENT_MEDIA,
    EVENT_START,
    EVENT_STOP,
    LOGGER_NAME,
    WS_CLOSE_GOING_AWAY,
    WS_CLOSE_NO_STATUS,
    WS_CLOSE_NORMAL,
)
from media_bridge.exceptions import ProtocolError, WebSocketTransportError
from media_bridge.handlers.activity_handlers import handle_dtmf, handle_mark
from media_bridge.handlers.stream_handlers import (
    handle_connected,
    handle_media,
    handle_start,
    handle_stop,
)
from media_bridge.models.message_schemas import IncomingMessage, parse_stream_message
from media_bridge.models.sessions import SessionManager

logger = logging.getLogger(LOGGER_NAME)

# Type hint for handler functions
HandlerFunc = Callable[[IncomingMessage, BridgeSession], Awaitable[None]]

NORMAL_CLOSE_CODES = (WS_CLOSE_NORMAL, WS_CLOSE_GOING_AWAY, WS_CLOSE_NO_STATUS)


class WebSocketManager:
    """Manages media stream connections and routes events to handlers.

    Each accepted WebSocket gets its own BridgeSession. Events are routed by the
    message's "event" field; anything that cannot be parsed or is not a known
    event is logged and skipped.
    """

    def __init__(
        self,
        sink_factory: Callable[[], RecognitionSink] = create_recognition_sink,
        session_factory: Callable[..., BridgeSession] = BridgeSession,
    ):
        self.session_manager = SessionManager()
        self.sink_factory = sink_factory
        self.session_factory = session_factory

        # Define handlers dictionary
        self.handlers: Dict[str, HandlerFunc] = {
            EVENT_CONNECTED: handle_connected,
            EVENT_START: handle_start,
            EVENT_MEDIA: handle_media,
            EVENT_STOP: handle_stop,
            EVENT_MARK: handle_mark,
            EVENT_DTMF: handle_dtmf,
        }

    async def _optimize_socket(self, websocket: WebSocket) -> None:
        """
        Optimize the WebSocket's underlying TCP socket for low-latency transmission.

        Args:
            websocket: The FastAPI WebSocket connection
        """
        try:
            client = websocket.client
            if hasattr(client, "sock") and client.sock is not None:
                # Disable Nagle's algorithm to send packets immediately
                client.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                logger.info("Optimized socket: TCP_NODELAY enabled for low latency")
        except Exception as e:
            logger.warning(f"Could not optimize socket: {e}")

    async def handle_websocket(self, websocket: WebSocket) -> BridgeSession:
        """Handle a media stream connection throughout its lifecycle.

        Args:
            websocket (WebSocket): The FastAPI WebSocket connection object

        Returns:
            The session that served the connection, after it has been closed

        This method:
        1. Accepts the WebSocket connection and creates a bridge session
        2. Processes incoming frames in a loop until the stream closes or fails
        3. Routes each frame to the handler for its event
        4. Always closes the session, releasing the transcoder and recognition
        """
        await websocket.accept()
        await self._optimize_socket(websocket)
        logger.info("Media stream WebSocket connection established")

        session = self.session_factory(websocket, self.sink_factory())
        self.session_manager.add_session(session)

        try:
            while session.state is not SessionState.FAILED:
                data = await self._receive_frame(websocket)
                if data is None:
                    logger.warning(f"Ignoring non-text frame for session: {session.log_id}")
                    continue
                await self.dispatch(data, session)

        except WebSocketDisconnect as e:
            session.on_transport_closed()
            if e.code in NORMAL_CLOSE_CODES:
                logger.info(f"Media stream closed by client (code={e.code}) for session: {session.log_id}")
            else:
                error = WebSocketTransportError(e.code, e.reason)
                logger.warning(f"{error} for session: {session.log_id}")
        except Exception as e:
            logger.error(f"Error in WebSocket connection: {e}", exc_info=True)
            await session.fail(f"Unexpected error: {e}")
        finally:
            await session.close()
            self.session_manager.remove_session(session.session_id)
            logger.info("WebSocket connection closed")

        return session

    @staticmethod
    async def _receive_frame(websocket: WebSocket) -> Optional[str]:
        """
        Receive the next frame, returning its text or None for a binary frame.

        Raises:
            WebSocketDisconnect: When the client has closed the connection
        """
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", WS_CLOSE_NORMAL), message.get("reason"))
        return message.get("text")

    async def dispatch(self, data: str, session: BridgeSession) -> None:
        """
        Parse one text frame and run the handler for its event.

        Protocol errors are recovered here: the frame is logged and skipped.
        """
        try:
            message = parse_stream_message(data)
        except ProtocolError as e:
            if e.event is not None:
                logger.warning(f"Ignoring frame for session {session.log_id}: {e}")
            else:
                logger.error(f"Ignoring malformed frame for session {session.log_id}: {e}")
            return

        handler = self.handlers.get(message.event)
        if handler is None:
            logger.warning(f"Unhandled event received: {message.event}")
            return
        await handler(message, session)

