"""
Unit tests for line framing.

Covers both line policies, partial line buffering and error body
detection.
"""

import pytest

from conftest import Chunk
from event_stream_core.decoding import JSONMessageDecoder
from event_stream_core.exceptions import DecodeError
from event_stream_core.framing import (
    FramedLine,
    LineFramer,
    LinePolicy,
    ErrorBodyBuffer,
    parse_error_body,
)


class RejectingDecoder:
    """Decoder whose every call fails."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = []

    def decode(self, data: bytes):
        self.calls.append(data)
        raise self.error


@pytest.fixture
def framer():
    return LineFramer(JSONMessageDecoder(Chunk))


class TestFramedLine:
    """Test FramedLine accessors."""

    def test_data_line(self) -> None:
        framed = FramedLine(data=b'data: {"id":1}\n', line=b'data: {"id":1}', message=Chunk(id=1))
        assert framed.is_data_line
        assert framed.payload == b'{"id":1}'

    def test_other_line(self) -> None:
        framed = FramedLine(data=b": ping\n", line=b": ping")
        assert framed.is_data_line is False
        assert framed.payload is None
        assert framed.message is None


class TestEveryLinePolicy:
    """Every line produces an event."""

    def test_single_data_line(self, framer) -> None:
        chunk = b'data: {"id":1}\n'
        lines = framer.feed(chunk)

        assert lines == [FramedLine(data=chunk, line=b'data: {"id":1}', message=Chunk(id=1))]

    def test_lines_in_order(self, framer) -> None:
        chunk = b'data: {"id":1}\ndata: {"id":2}\ndata: {"id":3}\n'
        lines = framer.feed(chunk)

        assert [line.message for line in lines] == [Chunk(id=1), Chunk(id=2), Chunk(id=3)]
        assert all(line.data == chunk for line in lines)

    def test_blank_and_comment_lines(self, framer) -> None:
        lines = framer.feed(b'data: {"id":1}\n\n: keep-alive\n')

        assert [line.line for line in lines] == [b'data: {"id":1}', b"", b": keep-alive"]
        assert [line.message for line in lines] == [Chunk(id=1), None, None]

    def test_invalid_json_keeps_line(self, framer) -> None:
        lines = framer.feed(b"data: {not json}\n")

        assert len(lines) == 1
        assert lines[0].message is None
        assert lines[0].payload == b"{not json}"

    def test_done_sentinel(self, framer) -> None:
        lines = framer.feed(b"data: [DONE]\n")

        assert lines[0].message is None
        assert lines[0].payload == b"[DONE]"

    def test_crlf_terminators(self, framer) -> None:
        lines = framer.feed(b'data: {"id":1}\r\n\r\n')

        assert [line.line for line in lines] == [b'data: {"id":1}', b""]
        assert lines[0].message == Chunk(id=1)

    def test_prefix_without_space_is_not_data(self, framer) -> None:
        lines = framer.feed(b'data:{"id":1}\n')

        assert lines[0].is_data_line is False
        assert lines[0].message is None

    def test_invalid_utf8_is_replaced(self, framer) -> None:
        lines = framer.feed(b"data: \xff\xfe\n")

        assert lines[0].line == "data: \ufffd\ufffd".encode("utf-8")
        assert lines[0].message is None
        assert lines[0].data == b"data: \xff\xfe\n"

    def test_empty_chunk(self, framer) -> None:
        assert framer.feed(b"") == []


class TestDataOnlyPolicy:
    """Only data lines produce events."""

    def test_drops_other_lines(self) -> None:
        framer = LineFramer(JSONMessageDecoder(Chunk), policy=LinePolicy.DATA_ONLY)
        lines = framer.feed(b'data: {"id":1}\n\n: keep-alive\nevent: ping\ndata: [DONE]\n')

        assert [line.line for line in lines] == [b'data: {"id":1}', b"data: [DONE]"]
        assert framer.policy is LinePolicy.DATA_ONLY

    def test_flush_drops_other_lines(self) -> None:
        framer = LineFramer(JSONMessageDecoder(Chunk), policy=LinePolicy.DATA_ONLY)
        framer.feed(b": trailing comment")

        assert framer.flush() == []


class TestPartialLines:
    """Lines split across chunks."""

    def test_buffered_until_terminated(self, framer) -> None:
        assert framer.feed(b'data: {"id"') == []
        assert framer.pending == b'data: {"id"'

        lines = framer.feed(b':1}\n')

        assert [line.message for line in lines] == [Chunk(id=1)]
        assert lines[0].data == b':1}\n'
        assert framer.pending == b""

    def test_flush_releases_pending_line(self, framer) -> None:
        framer.feed(b'data: {"id":1}\ndata: {"id":2}')

        lines = framer.flush()

        assert lines == [FramedLine(data=b'data: {"id":2}', line=b'data: {"id":2}', message=Chunk(id=2))]
        assert framer.flush() == []

    def test_split_crlf(self, framer) -> None:
        framer.feed(b'data: {"id":1}\r')
        lines = framer.feed(b"\n")

        assert [line.line for line in lines] == [b'data: {"id":1}']

    def test_without_buffering_each_chunk_stands_alone(self) -> None:
        framer = LineFramer(JSONMessageDecoder(Chunk), buffer_partial_lines=False)

        first = framer.feed(b'data: {"id"')
        second = framer.feed(b':1}\n')

        assert [line.line for line in first] == [b'data: {"id"']
        assert [line.line for line in second] == [b":1}"]
        assert first[0].message is None
        assert framer.pending == b""
        assert framer.flush() == []


class TestDecoderFailures:
    """Decoder errors never escape the framer."""

    @pytest.mark.parametrize(
        "error",
        [DecodeError("bad payload"), ValueError("bad value"), KeyError("missing")],
    )
    def test_failure_leaves_message_empty(self, error) -> None:
        decoder = RejectingDecoder(error)
        framer = LineFramer(decoder)

        lines = framer.feed(b'data: {"id":1}\n')

        assert lines[0].message is None
        assert decoder.calls == [b'{"id":1}']

    def test_decoder_only_sees_data_lines(self) -> None:
        decoder = RejectingDecoder(DecodeError("bad payload"))
        framer = LineFramer(decoder)

        framer.feed(b": comment\nid: 3\n")

        assert decoder.calls == []


class TestParseErrorBody:
    """Detection of whole-chunk error bodies."""

    def test_error_object(self) -> None:
        payload = parse_error_body(b'{"error":{"message":"boom"}}')
        assert payload == {"error": {"message": "boom"}}

    @pytest.mark.parametrize(
        "chunk",
        [
            b'{"message":"boom"}',
            b'["error"]',
            b"data: {\"error\":1}\n",
            b"not json",
            b"\xff\xfe",
            b"",
        ],
    )
    def test_not_an_error_body(self, chunk) -> None:
        assert parse_error_body(chunk) is None


class TestErrorBodyBuffer:
    """Error bodies of failed responses that arrive in pieces."""

    def test_whole_error_object(self) -> None:
        buffer = ErrorBodyBuffer()

        assert buffer.feed(b'{"error":{"message":"boom"}}') == ({"error": {"message": "boom"}}, [])
        assert buffer.held == b""

    def test_error_object_split_across_chunks(self) -> None:
        buffer = ErrorBodyBuffer()

        assert buffer.feed(b'{"error":{"mess') == (None, [])
        assert buffer.held == b'{"error":{"mess'
        payload, released = buffer.feed(b'age":"boom"}}\n')

        assert payload == {"error": {"message": "boom"}}
        assert released == []
        assert buffer.held == b""

    def test_non_object_released_at_once(self) -> None:
        buffer = ErrorBodyBuffer()
        assert buffer.feed(b"upstream unavailable\n") == (None, [b"upstream unavailable\n"])

    def test_complete_object_without_error_key_released(self) -> None:
        buffer = ErrorBodyBuffer()

        buffer.feed(b'  {"detail":')
        payload, released = buffer.feed(b'"overloaded"}')

        assert payload is None
        assert released == [b'  {"detail":', b'"overloaded"}']

    def test_limit_releases_held_chunks(self) -> None:
        buffer = ErrorBodyBuffer(limit=16)

        assert buffer.feed(b'{"error":') == (None, [])
        payload, released = buffer.feed(b'"0123456789"')

        assert payload is None
        assert released == [b'{"error":', b'"0123456789"']

    def test_release_empties_buffer(self) -> None:
        buffer = ErrorBodyBuffer()
        buffer.feed(b'{"error":')

        assert buffer.release() == [b'{"error":']
        assert buffer.release() == []
