import asyncio
import base64
import logging
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket
from starlette.websockets import WebSocketState

from media_bridge.bot.recognition import RecognitionSink


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class FakeStdin:
    """Stand-in for the StreamWriter attached to ffmpeg's stdin.

    A stalled stdin behaves like a child that stopped reading: drain() and
    wait_closed() block until the process exits.
    """

    def __init__(self, process):
        self.process = process
        self.written = bytearray()
        self.broken = False
        self.closed = False
        self.stalled = False

    def write(self, data):
        self.written.extend(data)

    async def drain(self):
        if self.broken:
            raise BrokenPipeError("[Errno 32] Broken pipe")
        if self.stalled:
            await self.process.wait()

    def is_closing(self):
        return self.closed

    def close(self):
        self.closed = True
        if self.process.exit_on_stdin_close:
            self.process.finish(0)

    async def wait_closed(self):
        if self.stalled:
            await self.process.wait()


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process running ffmpeg.

    Must be created inside a running event loop because it owns real StreamReaders.
    """

    def __init__(self, exit_on_stdin_close=True):
        self.pid = 4242
        self.returncode = None
        self.exit_on_stdin_close = exit_on_stdin_close
        self.killed = False
        self.stdin = FakeStdin(self)
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self._exited = asyncio.Event()

    def finish(self, code):
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def kill(self):
        self.killed = True
        self.finish(-9)

    async def wait(self):
        await self._exited.wait()
        return self.returncode


class RecordingPipe:
    """Transcoding pipe double that records batches instead of running ffmpeg."""

    def __init__(self, output=b"pcm-out"):
        self.output = output
        self.tail = b""
        self.start_error = None
        self.write_error = None
        self.started_with = None
        self.batches = []
        self.drain_calls = 0
        self.drain_keep_output = None
        self.stopped = False

    async def start(self, input_format, output_format):
        if self.start_error:
            raise self.start_error
        self.started_with = (input_format, output_format)

    async def convert(self, batch):
        self.batches.append(batch)
        if self.write_error:
            raise self.write_error
        return self.output

    async def drain_and_stop(self, keep_output=False):
        if self.stopped:
            return b""
        self.stopped = True
        self.drain_calls += 1
        self.drain_keep_output = keep_output
        return self.tail if keep_output else b""


class RecordingSink(RecognitionSink):
    """Recognition sink double that records the audio pushed into it."""

    def __init__(self, sample_rate=16000):
        super().__init__()
        self.sample_rate = sample_rate
        self.start_error = None
        self.pushed = []
        self.start_calls = 0
        self.stop_calls = 0

    async def start(self):
        self.start_calls += 1
        if self.start_error:
            raise self.start_error

    async def push_audio(self, pcm):
        self.pushed.append(pcm)

    async def stop(self):
        self.stop_calls += 1

    async def emit_partial(self, text):
        await self._notify(self._on_partial, text)

    async def emit_final(self, text):
        await self._notify(self._on_final, text)

    async def emit_cancelled(self, reason):
        await self._notify(self._on_cancelled, reason)


@pytest.fixture
def websocket():
    """A connected FastAPI WebSocket mock."""
    mock = AsyncMock(spec=WebSocket)
    mock.application_state = WebSocketState.CONNECTED
    mock.client_state = WebSocketState.CONNECTED
    return mock


@pytest.fixture
def pipe():
    return RecordingPipe()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def start_event():
    """Factory for Twilio start events."""

    def _make(stream_sid="MZ00000000000000000000000000000001",
              encoding="audio/x-mulaw", sample_rate=8000, channels=1):
        return {
            "event": "start",
            "sequenceNumber": "1",
            "streamSid": stream_sid,
            "start": {
                "streamSid": stream_sid,
                "accountSid": "AC00000000000000000000000000000001",
                "callSid": "CA00000000000000000000000000000001",
                "tracks": ["inbound"],
                "customParameters": {},
                "mediaFormat": {
                    "encoding": encoding,
                    "sampleRate": sample_rate,
                    "channels": channels,
                },
            },
        }

    return _make


@pytest.fixture
def media_event():
    """Factory for Twilio media events carrying the given audio bytes."""

    def _make(audio=b"\xff" * 160, chunk=1, payload=None):
        return {
            "event": "media",
            "sequenceNumber": str(chunk + 1),
            "streamSid": "MZ00000000000000000000000000000001",
            "media": {
                "track": "inbound",
                "chunk": str(chunk),
                "timestamp": str(chunk * 20),
                "payload": payload if payload is not None else base64.b64encode(audio).decode("utf-8"),
            },
        }

    return _make


@pytest.fixture
def fake_process():
    """Factory for fake ffmpeg processes; call it from inside the test's event loop."""
    return FakeProcess


@pytest.fixture
def make_sink():
    """Factory for recording sinks with a custom sample rate."""
    return RecordingSink
