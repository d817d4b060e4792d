"""
FastAPI server bridging Twilio Media Streams to realtime speech recognition.

This module initializes and configures the FastAPI application that serves as
the webhook and media stream endpoint for Twilio. The voice webhook answers an
incoming call with a TwiML document that opens a media stream back to this
server; the stream endpoint transcodes the caller's audio and feeds it to the
recognition engine.
"""

import os
from xml.sax.saxutils import quoteattr

from fastapi import FastAPI, Request, Response, WebSocket

from media_bridge.config.constants import RECOGNITION_ENGINE
from media_bridge.config.logging_config import configure_logging
from media_bridge.websocket_manager import WebSocketManager

# Configure logging
logger = configure_logging()

# Get configuration from environment variables
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")
STREAM_PATH = "/stream"

# Create FastAPI application
app = FastAPI(
    title="Twilio Media Bridge",
    description="Realtime bridge from Twilio Media Streams through ffmpeg to speech recognition",
    version="1.0.0",
)

# Create WebSocket manager
websocket_manager = WebSocketManager()


def build_voice_response(host: str) -> str:
    """Build the TwiML document that connects a call to the media stream endpoint."""
    stream_url = quoteattr(f"wss://{host}{STREAM_PATH}")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<Response>"
        "<Connect>"
        f"<Stream url={stream_url} />"
        "</Connect>"
        "</Response>"
    )


@app.post("/callback/calls/voice")
async def voice_call(request: Request) -> Response:
    """Voice webhook for incoming calls.

    Returns:
        Response: TwiML instructing Twilio to stream the call audio to ``/stream``.

    The stream host is taken from the PUBLIC_HOST environment variable when set,
    which is needed behind tunnels and proxies, and from the request otherwise.
    """
    host = os.getenv("PUBLIC_HOST") or request.headers.get("host") or f"{HOST}:{PORT}"
    logger.info(f"Answering incoming call with media stream to {host}{STREAM_PATH}")
    return Response(content=build_voice_response(host), media_type="text/xml")


@app.websocket(STREAM_PATH)
async def stream_endpoint(websocket: WebSocket):
    """WebSocket endpoint for Twilio Media Streams.

    This endpoint handles the complete lifecycle of one call's media stream:
    - connected and start events set up the transcoder and recognition
    - media events carry the caller's audio
    - stop and WebSocket close release every per-call resource

    All messages follow the Twilio Media Streams WebSocket protocol format.
    """
    await websocket_manager.handle_websocket(websocket)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information including active sessions and conversion latency.

    This endpoint can be used by load balancers or monitoring tools
    to verify the service is running and responsive.
    """
    session_manager = websocket_manager.session_manager
    return {
        "status": "healthy",
        "recognition_engine": RECOGNITION_ENGINE,
        "openai_api_key_configured": bool(os.getenv("OPENAI_API_KEY")),
        "active_sessions": len(session_manager.get_all_sessions()),
        **session_manager.latency_metrics(),
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": "Twilio Media Bridge",
        "description": "Realtime bridge from Twilio Media Streams through ffmpeg to speech recognition",
        "version": "1.0.0",
        "endpoints": {
            "/callback/calls/voice": "Voice webhook returning the media stream TwiML",
            STREAM_PATH: "WebSocket endpoint for Twilio Media Streams",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{HOST}:{PORT}")
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        websocket_ping_interval=5,
        websocket_max_size=16777216,
        websocket_ping_timeout=20,
        http="h11"
    )
