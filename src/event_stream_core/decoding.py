"""
Message decoding for event_stream_core.

A session is parameterized by a decoder that turns the JSON payload of
one ``data:`` line into a typed message. Validation is done by pydantic,
so a message type may be a BaseModel, a dataclass (stdlib or pydantic),
a TypedDict or any annotated type such as ``List[Chunk]``.

Timestamps follow pydantic's datetime rules: ISO 8601 strings, or Unix
epoch numbers read as seconds (as milliseconds beyond ``2e10``). Plain
epoch-second values therefore decode without extra setup. Anything that
varies per session travels in an explicit DecodingConfig.
"""

import dataclasses
from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union

from pydantic import TypeAdapter, ValidationError
from typing_extensions import Protocol, runtime_checkable

from .exceptions import DecodeError

M = TypeVar("M")
M_co = TypeVar("M_co", covariant=True)


@dataclasses.dataclass(frozen=True)
class DecodingConfig:
    """
    JSON decoding conventions.

    Attributes:
        strict: Validate in pydantic strict mode, with no type coercion
            (``"1"`` is not an int and epoch numbers are not datetimes)
        context: Passed to the message type's own validators
    """
    strict: bool = False
    context: Optional[Dict[str, Any]] = None


@runtime_checkable
class MessageDecoder(Protocol[M_co]):
    """Decodes the payload of one ``data:`` line into a message."""

    def decode(self, data: bytes) -> M_co:
        """Decode ``data`` or raise DecodeError."""
        ...


class JSONMessageDecoder(Generic[M]):
    """
    JSON decoder for event-stream messages.

    With no message type the parsed JSON value is returned as is. The
    type adapter is built once per decoder; an unsupported message type
    fails here, not on the first message.
    """

    def __init__(
        self,
        message_type: Optional[Type[M]] = None,
        config: Optional[DecodingConfig] = None,
    ) -> None:
        self._message_type = message_type
        self._config = config or DecodingConfig()
        self._adapter: TypeAdapter[Any] = TypeAdapter(Any if message_type is None else message_type)

    @property
    def config(self) -> DecodingConfig:
        return self._config

    @property
    def type_name(self) -> str:
        if self._message_type is None:
            return "JSON value"
        return getattr(self._message_type, "__name__", repr(self._message_type))

    def decode(self, data: Union[bytes, str]) -> M:
        try:
            return self._adapter.validate_json(
                data,
                strict=self._config.strict or None,
                context=self._config.context,
            )
        except ValidationError as e:
            raise DecodeError(f"Cannot decode {self.type_name}: {e}", cause=e) from e
