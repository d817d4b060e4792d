"""
Unit tests for the message schemas.

These tests validate that the Pydantic models accept the frames Twilio sends,
that the parser classifies frames by their event, and that anything malformed
is reported as a ProtocolError.
"""

import json

import pytest
from pydantic import ValidationError

from media_bridge.exceptions import ProtocolError
from media_bridge.models.message_schemas import (
    ClearMessage,
    ConnectedMessage,
    DtmfMessage,
    MarkMessage,
    MarkPayload,
    MediaFormat,
    MediaMessage,
    StartMessage,
    StopMessage,
    parse_stream_message,
)


class TestParseStreamMessage:
    """Tests for classifying raw text frames."""

    def test_connected(self):
        message = parse_stream_message(
            '{"event": "connected", "protocol": "Call", "version": "1.0.0"}'
        )
        assert isinstance(message, ConnectedMessage)
        assert message.protocol == "Call"
        assert message.version == "1.0.0"

    def test_start(self, start_event):
        message = parse_stream_message(json.dumps(start_event(stream_sid="MZabc")))
        assert isinstance(message, StartMessage)
        assert message.stream_sid == "MZabc"
        assert message.start.callSid == "CA00000000000000000000000000000001"
        assert message.start.accountSid == "AC00000000000000000000000000000001"
        assert message.start.tracks == ["inbound"]
        assert message.start.mediaFormat.encoding == "audio/x-mulaw"
        assert message.start.mediaFormat.sampleRate == 8000
        assert message.start.mediaFormat.channels == 1

    def test_start_stream_sid_falls_back_to_metadata(self, start_event):
        data = start_event(stream_sid="MZinner")
        del data["streamSid"]
        message = parse_stream_message(json.dumps(data))
        assert message.stream_sid == "MZinner"

    def test_start_without_media_format_uses_twilio_defaults(self):
        message = parse_stream_message('{"event": "start", "start": {"streamSid": "MZ1"}}')
        assert message.start.mediaFormat.ffmpeg_format == "mulaw"
        assert message.start.mediaFormat.sampleRate == 8000
        assert message.start.mediaFormat.channels == 1

    def test_media(self, media_event):
        message = parse_stream_message(json.dumps(media_event(audio=b"\x00\x7f\xff", chunk=3)))
        assert isinstance(message, MediaMessage)
        assert message.media.chunk == "3"
        assert message.media.track == "inbound"
        assert message.media.decode() == b"\x00\x7f\xff"

    def test_media_numeric_fields_are_coerced(self):
        message = parse_stream_message(
            '{"event": "media", "sequenceNumber": 4, "media": {"chunk": 2, "timestamp": 40, "payload": ""}}'
        )
        assert message.sequenceNumber == "4"
        assert message.media.chunk == "2"
        assert message.media.timestamp == "40"
        assert message.media.decode() == b""

    def test_stop(self):
        message = parse_stream_message(
            '{"event": "stop", "streamSid": "MZ1", "stop": {"callSid": "CA1", "accountSid": "AC1"}}'
        )
        assert isinstance(message, StopMessage)
        assert message.streamSid == "MZ1"
        assert message.stop.callSid == "CA1"

    def test_stop_without_metadata(self):
        message = parse_stream_message('{"event": "stop"}')
        assert isinstance(message, StopMessage)
        assert message.stop is None

    def test_mark_and_dtmf(self):
        mark = parse_stream_message('{"event": "mark", "streamSid": "MZ1", "mark": {"name": "greeting"}}')
        assert isinstance(mark, MarkMessage)
        assert mark.mark.name == "greeting"

        dtmf = parse_stream_message('{"event": "dtmf", "dtmf": {"track": "inbound_track", "digit": "5"}}')
        assert isinstance(dtmf, DtmfMessage)
        assert dtmf.dtmf.digit == "5"

    def test_extra_fields_are_tolerated(self):
        message = parse_stream_message('{"event": "stop", "futureField": {"x": 1}}')
        assert isinstance(message, StopMessage)

    def test_malformed_json(self):
        with pytest.raises(ProtocolError) as exc_info:
            parse_stream_message("{not json")
        assert exc_info.value.event is None

    def test_non_object_frame(self):
        with pytest.raises(ProtocolError):
            parse_stream_message("[1, 2, 3]")

    def test_missing_event(self):
        with pytest.raises(ProtocolError) as exc_info:
            parse_stream_message('{"streamSid": "MZ1"}')
        assert exc_info.value.event is None

    def test_unknown_event(self):
        with pytest.raises(ProtocolError) as exc_info:
            parse_stream_message('{"event": "ping"}')
        assert exc_info.value.event == "ping"

    def test_media_without_payload(self):
        with pytest.raises(ProtocolError) as exc_info:
            parse_stream_message('{"event": "media", "media": {"chunk": "1"}}')
        assert exc_info.value.event == "media"

    def test_invalid_dtmf_digit(self):
        with pytest.raises(ProtocolError):
            parse_stream_message('{"event": "dtmf", "dtmf": {"digit": "X"}}')


class TestMediaFormat:
    """Tests for the media format announced in the start event."""

    @pytest.mark.parametrize(
        "encoding,expected",
        [
            ("audio/x-mulaw", "mulaw"),
            ("AUDIO/X-MULAW", "mulaw"),
            ("audio/x-alaw", "alaw"),
            ("audio/l16", "s16le"),
            ("opus", "opus"),
        ],
    )
    def test_ffmpeg_format(self, encoding, expected):
        assert MediaFormat(encoding=encoding).ffmpeg_format == expected

    def test_rejects_non_positive_sample_rate(self):
        with pytest.raises(ValidationError):
            MediaFormat(encoding="audio/x-mulaw", sampleRate=0)

    def test_rejects_non_positive_channels(self):
        with pytest.raises(ValidationError):
            MediaFormat(encoding="audio/x-mulaw", channels=-1)


class TestOutboundMessages:
    """Tests for the messages the bridge sends to Twilio."""

    def test_mark_serialization(self):
        message = MarkMessage(event="mark", streamSid="MZ1", mark=MarkPayload(name="end"))
        assert json.loads(message.model_dump_json(exclude_none=True)) == {
            "event": "mark",
            "streamSid": "MZ1",
            "mark": {"name": "end"},
        }

    def test_clear_serialization(self):
        message = ClearMessage(event="clear", streamSid="MZ1")
        assert json.loads(message.model_dump_json(exclude_none=True)) == {
            "event": "clear",
            "streamSid": "MZ1",
        }
