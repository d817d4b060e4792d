"""
Bot module containing the realtime audio bridge between Twilio and speech recognition.

Key components:
- TranscodingPipe: owns one ffmpeg process per call, converting provider mu-law
  into linear PCM with a bounded read after every write.
- FrameBatcher: accumulates media frames into fixed-size batches before they
  are written to the transcoder.
- BridgeSession: per-call state machine tying the batcher, the transcoder and
  the recognition sink together, with guaranteed cleanup on every exit path.
- RecognitionSink: interface of the push-style recognizer, implemented by
  RealtimeTranscriptionClient (OpenAI Realtime API) and LoggingRecognitionSink.

Usage examples:
```python
from media_bridge.bot import BridgeSession, create_recognition_sink

session = BridgeSession(websocket, create_recognition_sink())
await session.start_stream(start_message)
await session.process_media(frame_bytes)
await session.stop_stream()
await session.close()
```
"""

from media_bridge.bot.bridge_session import BridgeSession, SessionState
from media_bridge.bot.frame_batcher import FrameBatcher
from media_bridge.bot.recognition import (
    LoggingRecognitionSink,
    RecognitionSink,
    create_recognition_sink,
)
from media_bridge.bot.transcoder import AudioFormat, TranscodingPipe

__all__ = [
    "AudioFormat",
    "BridgeSession",
    "FrameBatcher",
    "LoggingRecognitionSink",
    "RecognitionSink",
    "SessionState",
    "TranscodingPipe",
    "create_recognition_sink",
]
