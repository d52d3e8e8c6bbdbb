"""
Unit tests for message decoding.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

import pytest
from pydantic import BaseModel, ValidationError, field_validator

from event_stream_core.decoding import (
    DecodingConfig,
    JSONMessageDecoder,
    MessageDecoder,
)
from event_stream_core.exceptions import DecodeError


class Role(Enum):
    ASSISTANT = "assistant"
    USER = "user"


@dataclass
class Delta:
    role: Optional[Role] = None
    content: Optional[str] = None


@dataclass
class Choice:
    index: int
    delta: Delta
    finish_reason: Optional[str] = None


@dataclass
class Completion:
    id: str
    created: datetime
    choices: List[Choice] = field(default_factory=list)
    usage: Dict[str, int] = field(default_factory=dict)


class ModelChunk(BaseModel):
    id: int
    created: datetime
    tags: List[str] = []


class Tagged(BaseModel):
    tag: str

    @field_validator("tag")
    @classmethod
    def add_prefix(cls, value, info):
        prefix = (info.context or {}).get("prefix", "")
        return prefix + value


COMPLETION_JSON = (
    b'{"id":"cmpl-1","object":"chat.completion.chunk","created":1700000000,'
    b'"choices":[{"index":0,"delta":{"role":"assistant","content":"Hi"},"finish_reason":null}]}'
)
CREATED = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


class TestJSONMessageDecoder:
    """Decoding of data line payloads into typed messages."""

    def test_untyped_returns_json_value(self) -> None:
        decoder = JSONMessageDecoder()
        assert decoder.decode(b'{"id": 1, "tags": ["a"]}') == {"id": 1, "tags": ["a"]}

    def test_nested_dataclasses(self) -> None:
        message = JSONMessageDecoder(Completion).decode(COMPLETION_JSON)

        assert message.id == "cmpl-1"
        assert message.created == CREATED
        assert message.choices == [Choice(index=0, delta=Delta(role=Role.ASSISTANT, content="Hi"))]
        assert message.usage == {}

    def test_base_model_with_epoch_seconds(self) -> None:
        message = JSONMessageDecoder(ModelChunk).decode(b'{"id":1,"created":1700000000}')

        assert message == ModelChunk(id=1, created=CREATED)
        assert message.created.tzinfo is not None

    def test_list_of_messages(self) -> None:
        decoder = JSONMessageDecoder(List[ModelChunk])

        messages = decoder.decode(b'[{"id":1,"created":0,"tags":["a"]},{"id":2,"created":0}]')

        assert [message.id for message in messages] == [1, 2]
        assert messages[0].tags == ["a"]

    def test_unknown_keys_ignored(self) -> None:
        message = JSONMessageDecoder(Delta).decode(b'{"content":"x","extra":true}')
        assert message == Delta(content="x")

    def test_missing_required_key(self) -> None:
        with pytest.raises(DecodeError, match="Cannot decode Choice") as exc_info:
            JSONMessageDecoder(Choice).decode(b'{"index":0}')

        assert isinstance(exc_info.value.cause, ValidationError)

    def test_wrong_type(self) -> None:
        with pytest.raises(DecodeError):
            JSONMessageDecoder(Choice).decode(b'{"index":"zero","delta":{}}')

    def test_numeric_string_coerced_by_default(self) -> None:
        message = JSONMessageDecoder(Choice).decode(b'{"index":"0","delta":{}}')
        assert message.index == 0

    def test_strict_mode_rejects_coercion(self) -> None:
        decoder = JSONMessageDecoder(Choice, DecodingConfig(strict=True))

        with pytest.raises(DecodeError):
            decoder.decode(b'{"index":"0","delta":{}}')
        assert decoder.decode(b'{"index":0,"delta":{"content":"x"}}') == Choice(index=0, delta=Delta(content="x"))

    def test_context_reaches_validators(self) -> None:
        decoder = JSONMessageDecoder(Tagged, DecodingConfig(context={"prefix": "sse:"}))
        assert decoder.decode(b'{"tag":"ping"}') == Tagged(tag="sse:ping")

    @pytest.mark.parametrize("payload", [b"{not json}", b"[DONE]", b"\xff\xfe", b""])
    def test_invalid_json(self, payload) -> None:
        with pytest.raises(DecodeError, match="Cannot decode Delta"):
            JSONMessageDecoder(Delta).decode(payload)

    def test_invalid_enum_value(self) -> None:
        with pytest.raises(DecodeError):
            JSONMessageDecoder(Delta).decode(b'{"role":"robot"}')

    def test_accepts_str(self) -> None:
        assert JSONMessageDecoder().decode('{"id": 1}') == {"id": 1}

    def test_type_name(self) -> None:
        assert JSONMessageDecoder().type_name == "JSON value"
        assert JSONMessageDecoder(ModelChunk).type_name == "ModelChunk"

    def test_default_config(self) -> None:
        assert JSONMessageDecoder().config == DecodingConfig(strict=False, context=None)

    def test_satisfies_protocol(self) -> None:
        assert isinstance(JSONMessageDecoder(), MessageDecoder)


class TestTimestamps:
    """Timestamp representations accepted for datetime fields."""

    @dataclass
    class Stamped:
        at: datetime

    def test_epoch_seconds(self) -> None:
        message = JSONMessageDecoder(self.Stamped).decode(b'{"at": 0}')
        assert message.at == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_epoch_seconds_fractional(self) -> None:
        message = JSONMessageDecoder(self.Stamped).decode(b'{"at": 1.5}')
        assert message.at.timestamp() == 1.5

    def test_large_values_read_as_milliseconds(self) -> None:
        message = JSONMessageDecoder(self.Stamped).decode(b'{"at": 1700000000000}')
        assert message.at == CREATED

    def test_iso8601(self) -> None:
        message = JSONMessageDecoder(self.Stamped).decode(b'{"at": "2023-11-14T22:13:20Z"}')
        assert message.at == CREATED

    def test_garbage_rejected(self) -> None:
        with pytest.raises(DecodeError):
            JSONMessageDecoder(self.Stamped).decode(b'{"at": "yesterday"}')
