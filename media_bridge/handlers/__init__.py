"""
Handlers module for Twilio Media Streams events in the media bridge.

Each handler receives a validated message model and the call's BridgeSession,
and translates the event into a session state transition.

Key components:
- stream_handlers: connected, start, media and stop events, which drive the
  session lifecycle and the audio path, plus the outbound mark and clear
  control messages.
- activity_handlers: mark and dtmf events, which are informational only.

Usage examples:
```python
from media_bridge.handlers import stream_handlers
from media_bridge.models.message_schemas import parse_stream_message

message = parse_stream_message(frame_text)
if message.event == "media":
    await stream_handlers.handle_media(message, session)

await stream_handlers.send_clear(websocket, session.stream_sid)
```
"""
