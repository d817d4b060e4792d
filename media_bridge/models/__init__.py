"""
Models module for data structures and state management in the media bridge.

This module provides structured data models and state management classes for the
application, defining the schemas of the Twilio Media Streams protocol and the
registry of live bridge sessions.

Key components:
- message_schemas: Pydantic models for validating inbound Media Streams events
  (connected, start, media, stop, mark, dtmf) and serializing outbound control
  messages (mark, clear), plus the ``parse_stream_message`` classifier.
- sessions: Registry of active bridge sessions used for health reporting.

Usage examples:
```python
from media_bridge.models.message_schemas import parse_stream_message, MediaMessage

message = parse_stream_message(frame_text)
if isinstance(message, MediaMessage):
    audio = message.media.decode()

from media_bridge.models.message_schemas import ClearMessage

clear = ClearMessage(event="clear", streamSid=stream_sid)
await websocket.send_text(clear.model_dump_json(exclude_none=True))
```
"""

from media_bridge.models.message_schemas import (
    ClearMessage,
    ConnectedMessage,
    DtmfMessage,
    DtmfPayload,
    IncomingMessage,
    MarkMessage,
    MarkPayload,
    MediaFormat,
    MediaMessage,
    MediaPayload,
    OutgoingMessage,
    StartMessage,
    StartMetadata,
    StopMessage,
    StopMetadata,
    StreamBaseMessage,
    parse_stream_message,
)
