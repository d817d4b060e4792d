"""
Twilio Media Bridge - Twilio Media Streams to realtime speech recognition

This application answers phone calls through Twilio, receives the caller's audio
over a Media Streams WebSocket, transcodes it in realtime with ffmpeg and pushes
the resulting linear PCM into a streaming speech recognizer.

Architecture Overview:
- FastAPI server exposing the voice webhook and the media stream WebSocket
- One ffmpeg process per call converting 8kHz mu-law into linear PCM
- Frame batching to amortize pipe I/O across small 20ms frames
- Pluggable recognition sink (OpenAI Realtime transcription or a logging sink)

Key Components:
- bot: Transcoder, frame batcher, per-call bridge session and recognition sinks
- config: Application-wide configuration, constants, and logging setup
- handlers: Handlers for the Media Streams events
- models: Message schemas and the registry of active sessions
- websocket_manager: Central handler for WebSocket connections and event routing

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key (or RECOGNITION_ENGINE=log)
   - PUBLIC_HOST: Public host name Twilio should stream to
   - FFMPEG_PATH: ffmpeg binary (default: ffmpeg on PATH)
   - LOG_LEVEL: Logging level (default INFO)

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the Twilio phone number's voice webhook at:
   https://your-server/callback/calls/voice
"""
