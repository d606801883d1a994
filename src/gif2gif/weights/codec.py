from __future__ import annotations

import logging
import struct
from collections.abc import Mapping, Sequence

import numpy as np
from numpy.typing import NDArray
from pydantic import TypeAdapter, ValidationError

from gif2gif.errors import DecodeError
from gif2gif.models import TensorDescriptor, WeightMap

logger = logging.getLogger(__name__)

SEGMENT_COUNT = 3
"""Descriptors, codebook, indices."""

_LENGTH_PREFIX = struct.Struct(">I")
_CODEBOOK_DTYPE = np.dtype("<f4")
_MAX_LEVELS = 256

_DESCRIPTORS = TypeAdapter(list[TensorDescriptor])


def split_segments(buffer: bytes) -> list[bytes]:
    """Split *buffer* into its length-prefixed segments.

    Raises ``DecodeError`` on a truncated length prefix or a length that
    runs past the end of the buffer.
    """
    view = memoryview(buffer)
    segments: list[bytes] = []
    offset = 0
    while offset < len(view):
        if len(view) - offset < _LENGTH_PREFIX.size:
            raise DecodeError(
                f"Truncated length prefix at byte {offset} "
                f"({len(view) - offset} bytes left)."
            )
        (length,) = _LENGTH_PREFIX.unpack_from(view, offset)
        offset += _LENGTH_PREFIX.size
        if length > len(view) - offset:
            raise DecodeError(
                f"Segment {len(segments)} declares {length} bytes but only "
                f"{len(view) - offset} remain."
            )
        segments.append(bytes(view[offset : offset + length]))
        offset += length
    return segments


def parse_descriptors(segment: bytes) -> list[TensorDescriptor]:
    try:
        text = segment.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Tensor descriptor segment is not UTF-8: {exc}") from exc
    try:
        descriptors = _DESCRIPTORS.validate_json(text)
    except ValidationError as exc:
        raise DecodeError(f"Invalid tensor descriptor segment: {exc}") from exc

    seen: set[str] = set()
    for descriptor in descriptors:
        if descriptor.name in seen:
            raise DecodeError(f"Duplicate tensor name {descriptor.name!r}.")
        seen.add(descriptor.name)
    return descriptors


def dequantize(codebook: bytes, indices: bytes) -> NDArray[np.float32]:
    """Replace every uint8 index with its codebook float."""
    if len(codebook) % _CODEBOOK_DTYPE.itemsize:
        raise DecodeError(
            f"Codebook segment length {len(codebook)} is not a multiple of "
            f"{_CODEBOOK_DTYPE.itemsize}."
        )
    table = np.frombuffer(codebook, dtype=_CODEBOOK_DTYPE).astype(np.float32)
    encoded = np.frombuffer(indices, dtype=np.uint8)
    if encoded.size and int(encoded.max()) >= table.size:
        raise DecodeError(
            f"Index {int(encoded.max())} is outside the {table.size}-entry codebook."
        )
    return table[encoded]


def decode_weight_file(buffer: bytes, source: str = "") -> WeightMap:
    """Decode a quantized weight file into a WeightMap."""
    segments = split_segments(buffer)
    if len(segments) != SEGMENT_COUNT:
        raise DecodeError(
            f"Expected {SEGMENT_COUNT} segments, found {len(segments)}."
        )
    descriptor_segment, codebook_segment, index_segment = segments

    descriptors = parse_descriptors(descriptor_segment)
    flat = dequantize(codebook_segment, index_segment)

    expected = sum(descriptor.size for descriptor in descriptors)
    if expected != flat.size:
        raise DecodeError(
            f"Descriptors declare {expected} values but the index segment "
            f"holds {flat.size}."
        )

    tensors: dict[str, NDArray[np.float32]] = {}
    offset = 0
    for descriptor in descriptors:
        values = flat[offset : offset + descriptor.size]
        tensors[descriptor.name] = values.reshape(descriptor.shape)
        offset += descriptor.size
        logger.debug(
            "Decoded tensor %s shape=%s.", descriptor.name, descriptor.shape
        )

    weights = WeightMap(tensors, source=source)
    logger.info(
        "Decoded %d tensors (%d params, %d codebook entries) from %s.",
        len(weights),
        weights.total_params,
        len(codebook_segment) // _CODEBOOK_DTYPE.itemsize,
        source or "<buffer>",
    )
    return weights


def encode_weight_file(
    descriptors: Sequence[TensorDescriptor],
    codebook: NDArray[np.floating],
    indices: NDArray[np.integer],
) -> bytes:
    """Write the three-segment weight stream."""
    header = _DESCRIPTORS.dump_json(list(descriptors))
    table = np.ascontiguousarray(codebook, dtype=_CODEBOOK_DTYPE).tobytes()
    encoded = np.ascontiguousarray(indices, dtype=np.uint8).tobytes()

    parts: list[bytes] = []
    for payload in (header, table, encoded):
        parts.append(_LENGTH_PREFIX.pack(len(payload)))
        parts.append(payload)
    return b"".join(parts)


def build_codebook(values: NDArray[np.float32], levels: int) -> NDArray[np.float32]:
    """Quantile codebook of *levels* sorted entries."""
    if values.size == 0:
        return np.zeros(levels, dtype=np.float32)
    quantiles = np.linspace(0.0, 1.0, levels)
    return np.quantile(values, quantiles).astype(np.float32)


def nearest_indices(
    values: NDArray[np.float32], codebook: NDArray[np.float32]
) -> NDArray[np.uint8]:
    last = codebook.size - 1
    right = np.clip(np.searchsorted(codebook, values), 0, last)
    left = np.clip(right - 1, 0, last)
    take_left = np.abs(values - codebook[left]) <= np.abs(values - codebook[right])
    return np.where(take_left, left, right).astype(np.uint8)


def pack_weights(
    arrays: Mapping[str, NDArray[np.floating]], levels: int = _MAX_LEVELS
) -> bytes:
    """Quantize named arrays into a weight file with a shared codebook."""
    if not 1 <= levels <= _MAX_LEVELS:
        raise ValueError(f"levels must be in [1, {_MAX_LEVELS}], got {levels}.")

    descriptors: list[TensorDescriptor] = []
    chunks: list[NDArray[np.float32]] = []
    for name, array in arrays.items():
        values = np.asarray(array, dtype=np.float32)
        descriptors.append(TensorDescriptor(name=name, shape=tuple(values.shape)))
        chunks.append(values.reshape(-1))

    flat = np.concatenate(chunks) if chunks else np.zeros(0, dtype=np.float32)
    codebook = build_codebook(flat, levels)
    indices = nearest_indices(flat, codebook)
    logger.info(
        "Packed %d tensors (%d params) into a %d-entry codebook.",
        len(descriptors),
        flat.size,
        levels,
    )
    return encode_weight_file(descriptors, codebook, indices)
