"""Typed decode and manipulation errors."""

from typing import Optional


class DecodeError(ValueError):
    """Base class for every failure raised while decoding an image.

    Context attributes are optional and only set when the raising site knows
    them, so a message can be diagnosed without re-parsing the input.
    """

    kind = "decode_error"

    def __init__(
        self,
        message: str,
        *,
        offset: Optional[int] = None,
        marker: Optional[int] = None,
        chunk: Optional[str] = None,
        mcu: Optional[int] = None,
        block: Optional[int] = None,
        row: Optional[int] = None,
    ):
        self.offset = offset
        self.marker = marker
        self.chunk = chunk
        self.mcu = mcu
        self.block = block
        self.row = row
        self.detail = message
        super().__init__(self._format(message))

    def with_context(self, **context) -> "DecodeError":
        """Copy of this error with extra context fields filled in."""
        fields = {
            name: getattr(self, name)
            for name in ("offset", "marker", "chunk", "mcu", "block", "row")
        }
        fields.update({k: v for k, v in context.items() if fields.get(k) is None})
        return type(self)(self.detail, **fields)

    def _format(self, message: str) -> str:
        context = []
        if self.marker is not None:
            context.append(f"marker=0x{self.marker:02X}")
        if self.chunk is not None:
            context.append(f"chunk={self.chunk}")
        if self.mcu is not None:
            context.append(f"mcu={self.mcu}")
        if self.block is not None:
            context.append(f"block={self.block}")
        if self.row is not None:
            context.append(f"row={self.row}")
        if self.offset is not None:
            context.append(f"offset={self.offset}")
        if not context:
            return message
        return f"{message} ({', '.join(context)})"


class MalformedHeaderError(DecodeError):
    """Bad signature, invalid header values or illegal segment order."""

    kind = "malformed_header"


class UnsupportedFeatureError(DecodeError):
    """Well-formed input using a feature this codec does not implement."""

    kind = "unsupported_feature"


class TruncatedStreamError(DecodeError):
    """Input ended before the decoder had everything it needed."""

    kind = "truncated_stream"


class UnexpectedEofError(TruncatedStreamError):
    """A read ran past the end of the underlying buffer."""


class CorruptDataError(DecodeError):
    """Payload bytes that cannot be interpreted (bad codes, CRC, zlib...)."""

    kind = "corrupt_data"


class ResourceLimitExceededError(DecodeError):
    """Declared dimensions exceed the allocation ceiling."""

    kind = "resource_limit_exceeded"


class InvalidArgumentError(ValueError):
    """Rejected argument to an image manipulation; the image is unchanged."""

    kind = "invalid_argument"
