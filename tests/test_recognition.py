import pytest
from unittest.mock import AsyncMock, patch

from media_bridge.bot.realtime_api import RealtimeTranscriptionClient
from media_bridge.bot.recognition import (
    LoggingRecognitionSink,
    RecognitionSink,
    create_recognition_sink,
)


def test_create_logging_sink():
    sink = create_recognition_sink("log")
    assert isinstance(sink, LoggingRecognitionSink)
    assert sink.sample_rate == 16000


def test_create_openai_sink():
    with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}):
        sink = create_recognition_sink("openai")
    assert isinstance(sink, RealtimeTranscriptionClient)
    assert sink.api_key == "sk-test"
    assert sink.sample_rate == 24000


def test_create_openai_sink_reads_settings_when_called():
    env = {
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_TRANSCRIBE_MODEL": "gpt-4o-mini-transcribe",
        "RECOGNITION_LANGUAGE": "es",
    }
    with patch.dict("os.environ", env):
        sink = create_recognition_sink("openai")
    assert sink.model == "gpt-4o-mini-transcribe"
    assert sink.language == "es"

    with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test", "RECOGNITION_LANGUAGE": ""}):
        sink = create_recognition_sink("openai")
    assert sink.language is None


def test_create_unknown_sink():
    with pytest.raises(ValueError):
        create_recognition_sink("azure")


def test_sink_is_abstract():
    with pytest.raises(TypeError):
        RecognitionSink()


@pytest.mark.asyncio
async def test_logging_sink_counts_audio():
    sink = LoggingRecognitionSink()

    await sink.start()
    await sink.push_audio(b"\x00" * 3200)
    await sink.push_audio(b"\x00" * 1600)
    await sink.stop()
    await sink.stop()

    assert sink.bytes_received == 4800
    assert not sink.started


@pytest.mark.asyncio
async def test_handler_errors_are_contained():
    sink = LoggingRecognitionSink()
    failing = AsyncMock(side_effect=RuntimeError("handler broke"))
    sink.set_handlers(on_final=failing)

    await sink._notify(sink._on_final, "hello")

    failing.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_notify_without_handler_is_noop():
    sink = LoggingRecognitionSink()
    await sink._notify(None, "hello")
