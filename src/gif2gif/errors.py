from __future__ import annotations


class Gif2GifError(Exception):
    """Base class for every error raised by gif2gif."""


class FetchError(Gif2GifError):
    """A weight or input transfer failed or returned no usable payload."""


class DecodeError(Gif2GifError, ValueError):
    """A weight file segment stream is malformed."""


class ShapeError(Gif2GifError, ValueError):
    """Tensor shapes are incompatible with the generator architecture."""
