"""
Pydantic models for the Twilio Media Streams WebSocket protocol.

This module defines structured data models for the inbound events Twilio sends over
a media stream (connected, start, media, stop, mark, dtmf) and the outbound control
messages the bridge may send back (mark, clear). It also provides the parser that
classifies a raw text frame by its ``event`` discriminator.

The models are deliberately permissive: unknown fields are kept, and fields the
provider may omit are optional, since the protocol is versioned and grows over time.
"""

import base64
import json
from typing import Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from media_bridge.config.constants import (
    INPUT_CHANNELS,
    INPUT_ENCODING,
    INPUT_SAMPLE_RATE,
)
from media_bridge.exceptions import ProtocolError

# Twilio encoding names mapped to ffmpeg raw demuxer names
FFMPEG_FORMATS = {
    "audio/x-mulaw": "mulaw",
    "mulaw": "mulaw",
    "ulaw": "mulaw",
    "audio/x-alaw": "alaw",
    "alaw": "alaw",
    "audio/l16": "s16le",
    "pcm": "s16le",
}


# Base Models
class StreamBaseMessage(BaseModel):
    """Base model for all Media Streams messages."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    event: str = Field(..., description="Event type discriminator")
    sequenceNumber: Optional[str] = Field(
        None, description="Provider message sequence number"
    )
    streamSid: Optional[str] = Field(None, description="Unique stream identifier")


class MediaFormat(BaseModel):
    """Audio format announced in the start event."""

    encoding: str = Field(INPUT_ENCODING, description="Audio encoding name")
    sampleRate: int = Field(INPUT_SAMPLE_RATE, description="Sample rate in Hz")
    channels: int = Field(INPUT_CHANNELS, description="Channel count")

    @field_validator("sampleRate", "channels")
    def validate_positive(cls, v):
        """Validate that rates and channel counts are positive."""
        if v <= 0:
            raise ValueError("Must be a positive integer")
        return v

    @property
    def ffmpeg_format(self) -> str:
        """Name of the ffmpeg raw format matching this encoding."""
        return FFMPEG_FORMATS.get(self.encoding.lower(), self.encoding.lower())


# Inbound Messages
class ConnectedMessage(StreamBaseMessage):
    """Model for the connected event, the first message on a stream."""

    event: Literal["connected"]
    protocol: Optional[str] = Field(None, description="Protocol name")
    version: Optional[str] = Field(None, description="Protocol version")


class StartMetadata(BaseModel):
    """Metadata carried by the start event."""

    model_config = ConfigDict(extra="allow")

    streamSid: Optional[str] = None
    accountSid: Optional[str] = None
    callSid: Optional[str] = None
    tracks: List[str] = Field(default_factory=list)
    customParameters: Dict[str, str] = Field(default_factory=dict)
    mediaFormat: MediaFormat = Field(default_factory=MediaFormat)


class StartMessage(StreamBaseMessage):
    """Model for the start event describing the stream and its media format."""

    event: Literal["start"]
    start: StartMetadata = Field(default_factory=StartMetadata)

    @property
    def stream_sid(self) -> Optional[str]:
        return self.streamSid or self.start.streamSid


class MediaPayload(BaseModel):
    """Audio payload of a media event."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    track: Optional[str] = Field(None, description="inbound or outbound")
    chunk: Optional[str] = Field(None, description="Chunk sequence number")
    timestamp: Optional[str] = Field(None, description="Milliseconds from stream start")
    payload: str = Field(..., description="Base64-encoded audio data")

    def decode(self) -> bytes:
        """Decode the payload, raising binascii.Error when it is not valid base64."""
        return base64.b64decode(self.payload, validate=True)


class MediaMessage(StreamBaseMessage):
    """Model for a media event carrying one frame of audio."""

    event: Literal["media"]
    media: MediaPayload


class StopMetadata(BaseModel):
    """Metadata carried by the stop event."""

    model_config = ConfigDict(extra="allow")

    accountSid: Optional[str] = None
    callSid: Optional[str] = None


class StopMessage(StreamBaseMessage):
    """Model for the stop event ending the stream."""

    event: Literal["stop"]
    stop: Optional[StopMetadata] = None


class MarkPayload(BaseModel):
    """Name of a playback marker."""

    name: str = Field(..., description="Marker name")


class MarkMessage(StreamBaseMessage):
    """Model for a mark message, sent by the bridge and echoed back by Twilio."""

    event: Literal["mark"]
    mark: MarkPayload


class DtmfPayload(BaseModel):
    """Keypress detected on the call."""

    track: Optional[str] = None
    digit: str

    @field_validator("digit")
    def validate_digit(cls, v):
        """Validate that the digit is a DTMF symbol."""
        if v not in "0123456789*#ABCD" or len(v) != 1:
            raise ValueError(f"Invalid DTMF digit: {v}")
        return v


class DtmfMessage(StreamBaseMessage):
    """Model for a dtmf event."""

    event: Literal["dtmf"]
    dtmf: DtmfPayload


# Outbound Messages
class ClearMessage(StreamBaseMessage):
    """Model for a clear message asking Twilio to flush its outbound audio."""

    event: Literal["clear"]


# Union type for all possible incoming messages
IncomingMessage = Union[
    ConnectedMessage,
    StartMessage,
    MediaMessage,
    StopMessage,
    MarkMessage,
    DtmfMessage,
]

# Union type for all possible outgoing messages
OutgoingMessage = Union[MarkMessage, ClearMessage]

INBOUND_MESSAGE_TYPES: Dict[str, Type[StreamBaseMessage]] = {
    "connected": ConnectedMessage,
    "start": StartMessage,
    "media": MediaMessage,
    "stop": StopMessage,
    "mark": MarkMessage,
    "dtmf": DtmfMessage,
}


def parse_stream_message(raw: str) -> IncomingMessage:
    """
    Classify a WebSocket text frame and validate it against its event model.

    Args:
        raw: The text frame as received from Twilio

    Returns:
        The typed message for the frame's ``event``

    Raises:
        ProtocolError: If the frame is not a JSON object, has no ``event``,
            names an unknown event, or does not match the event's model
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed JSON frame: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Frame is not a JSON object")

    event = data.get("event")
    if not isinstance(event, str):
        raise ProtocolError("Frame has no 'event' discriminator")

    model = INBOUND_MESSAGE_TYPES.get(event)
    if model is None:
        raise ProtocolError(f"Unknown event: {event}", event=event)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {event} message: {e}", event=event) from e
