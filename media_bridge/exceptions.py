"""
Exception hierarchy for the media bridge.

Errors are grouped by how the bridge reacts to them:
- ProtocolError is recovered locally: the offending frame is logged and skipped.
- TranscodingPipeError and RecognitionError are fatal to one session only.
- WebSocketTransportError ends the session at its boundary and is never
  propagated to the server.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all media bridge errors."""


class ProtocolError(BridgeError):
    """A WebSocket frame could not be decoded into a known stream event."""

    def __init__(self, message: str, event: Optional[str] = None):
        super().__init__(message)
        self.event = event


class TranscodingPipeError(BridgeError):
    """Base class for transcoder process failures."""


class PipeStartError(TranscodingPipeError):
    """The transcoder binary could not be located or failed to launch."""


class PipeWriteError(TranscodingPipeError):
    """Writing to the transcoder failed because the process is gone."""


class RecognitionError(BridgeError):
    """The recognition sink could not be started."""


class WebSocketTransportError(BridgeError):
    """The provider dropped the WebSocket without a normal close."""

    def __init__(self, code: int, reason: Optional[str] = None):
        message = f"WebSocket closed abnormally (code={code})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.code = code
        self.reason = reason
