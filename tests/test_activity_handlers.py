import pytest
from unittest.mock import MagicMock, patch

from media_bridge.handlers.activity_handlers import handle_dtmf, handle_mark
from media_bridge.models.message_schemas import parse_stream_message


@pytest.fixture
def session():
    session = MagicMock()
    session.log_id = "MZ1"
    return session


@pytest.mark.asyncio
async def test_handle_mark_logs_name(session):
    message = parse_stream_message('{"event": "mark", "streamSid": "MZ1", "mark": {"name": "greeting"}}')

    with patch("media_bridge.handlers.activity_handlers.logger") as mock_logger:
        await handle_mark(message, session)

    assert "greeting" in mock_logger.info.call_args[0][0]


@pytest.mark.asyncio
async def test_handle_dtmf_logs_digit(session):
    message = parse_stream_message('{"event": "dtmf", "dtmf": {"track": "inbound_track", "digit": "#"}}')

    with patch("media_bridge.handlers.activity_handlers.logger") as mock_logger:
        await handle_dtmf(message, session)

    assert "'#'" in mock_logger.info.call_args[0][0]
    session.process_media.assert_not_called()
