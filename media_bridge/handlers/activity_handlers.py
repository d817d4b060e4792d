"""
Handles informational events on a Twilio media stream.

Mark events are Twilio's acknowledgement that playback reached a marker sent
with ``send_mark``; dtmf events report keypresses on the call. Neither carries
audio, so they are only logged.
"""

import logging

from media_bridge.bot.bridge_session import BridgeSession
from media_bridge.config.constants import LOGGER_NAME
from media_bridge.models.message_schemas import DtmfMessage, MarkMessage

logger = logging.getLogger(LOGGER_NAME)


async def handle_mark(message: MarkMessage, session: BridgeSession) -> None:
    """Log a playback marker echoed back by Twilio."""
    logger.info(f"Playback reached mark '{message.mark.name}' for session: {session.log_id}")


async def handle_dtmf(message: DtmfMessage, session: BridgeSession) -> None:
    """Log a keypress detected on the call."""
    logger.info(f"DTMF digit '{message.dtmf.digit}' received for session: {session.log_id}")
