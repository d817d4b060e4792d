"""
Handles the Twilio Media Streams lifecycle and audio events.

This module processes the connected, start, media and stop events of a media
stream and drives the bridge session accordingly. It also provides the outbound
control messages (mark and clear) the bridge may send back to Twilio.
"""

import binascii
import logging
from typing import Optional

from fastapi import WebSocket

from media_bridge.bot.bridge_session import BridgeSession
from media_bridge.config.constants import EVENT_CLEAR, EVENT_MARK, LOGGER_NAME
from media_bridge.models.message_schemas import (
    ClearMessage,
    ConnectedMessage,
    MarkMessage,
    MarkPayload,
    MediaMessage,
    StartMessage,
    StopMessage,
)

logger = logging.getLogger(LOGGER_NAME)


async def handle_connected(message: ConnectedMessage, session: BridgeSession) -> None:
    """
    Handle the connected event, the first message Twilio sends on a new stream.

    Only the protocol name and version are recorded; they are diagnostic.
    """
    session.on_connected(message.protocol, message.version)


async def handle_start(message: StartMessage, session: BridgeSession) -> None:
    """
    Handle the start event describing the stream.

    Captures the stream, call and account identifiers and the media format,
    then starts the transcoder and recognition for the call.
    """
    await session.start_stream(message)


async def handle_media(message: MediaMessage, session: BridgeSession) -> None:
    """
    Handle a media event carrying one frame of base64-encoded audio.

    A payload that is not valid base64 is logged and dropped; the session
    carries on with the next frame.
    """
    media = message.media
    try:
        frame = media.decode()
    except (binascii.Error, ValueError) as e:
        logger.warning(
            f"Dropping media chunk {media.chunk} for session {session.log_id}: invalid base64 payload ({e})"
        )
        return

    logger.debug(
        f"Received audio data: {len(frame)} bytes "
        f"(track={media.track}, chunk={media.chunk}, timestamp={media.timestamp})"
    )
    await session.process_media(frame)


async def handle_stop(message: StopMessage, session: BridgeSession) -> None:
    """Handle the stop event ending the stream."""
    if message.streamSid:
        logger.info(f"Stopped Stream SID: {message.streamSid}")
    await session.stop_stream()


async def send_mark(websocket: WebSocket, stream_sid: str, name: str) -> MarkMessage:
    """
    Ask Twilio to report back when playback reaches this point.

    Twilio echoes a mark event with the same name once the audio sent before
    the mark has been played.

    Args:
        websocket: The media stream WebSocket
        stream_sid: The stream to place the marker on
        name: Marker name echoed back by Twilio

    Returns:
        The message that was sent
    """
    message = MarkMessage(event=EVENT_MARK, streamSid=stream_sid, mark=MarkPayload(name=name))
    await websocket.send_text(message.model_dump_json(exclude_none=True))
    logger.debug(f"Sent mark '{name}' for stream: {stream_sid}")
    return message


async def send_clear(websocket: WebSocket, stream_sid: Optional[str]) -> Optional[ClearMessage]:
    """
    Ask Twilio to flush any outbound audio it has buffered for the stream.

    Args:
        websocket: The media stream WebSocket
        stream_sid: The stream to clear; nothing is sent when it is unknown

    Returns:
        The message that was sent, or None
    """
    if not stream_sid:
        logger.warning("Cannot send clear message without a streamSid")
        return None
    message = ClearMessage(event=EVENT_CLEAR, streamSid=stream_sid)
    await websocket.send_text(message.model_dump_json(exclude_none=True))
    logger.debug(f"Sent clear for stream: {stream_sid}")
    return message
