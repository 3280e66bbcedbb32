"""Data models: decoder options, decoder output and error types.

The unified Image lives in models.image.
"""

from .errors import (
    DecodeError,
    MalformedHeaderError,
    UnsupportedFeatureError,
    TruncatedStreamError,
    UnexpectedEofError,
    CorruptDataError,
    ResourceLimitExceededError,
    InvalidArgumentError,
)
from .decode_options import DecodeOptions
from .decoded_image import DecodedImage

__all__ = [
    'DecodeError',
    'MalformedHeaderError',
    'UnsupportedFeatureError',
    'TruncatedStreamError',
    'UnexpectedEofError',
    'CorruptDataError',
    'ResourceLimitExceededError',
    'InvalidArgumentError',
    'DecodeOptions',
    'DecodedImage',
]
