from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TypeVar

import numpy as np
from numpy.typing import NDArray

from gif2gif.contracts import TensorMath
from gif2gif.errors import ShapeError
from gif2gif.forward import OUTPUT_CHANNELS, forward
from gif2gif.settings import FRAME_CHANNELS, FRAME_SIZE

logger = logging.getLogger(__name__)

T = TypeVar("T")

FRAME_SHAPE = (FRAME_SIZE, FRAME_SIZE, FRAME_CHANNELS)


def as_frame(pixels: NDArray[np.uint8] | bytes | bytearray) -> NDArray[np.uint8]:
    """View a flat or ``(256, 256, 4)`` RGBA buffer as a frame array."""
    if isinstance(pixels, (bytes, bytearray)):
        array = np.frombuffer(pixels, dtype=np.uint8)
    else:
        array = np.asarray(pixels)
    if array.dtype != np.uint8:
        raise ShapeError(f"Frame must be uint8, got {array.dtype}.")
    if array.size != FRAME_SIZE * FRAME_SIZE * FRAME_CHANNELS:
        raise ShapeError(
            f"Frame has {array.size} bytes, expected a {FRAME_SHAPE} RGBA buffer."
        )
    return array.reshape(FRAME_SHAPE)


def to_pixels(values: NDArray[np.floating]) -> NDArray[np.uint8]:
    """Scale [0, 1] floats to bytes, rounding and clamping to [0, 255]."""
    return np.clip(np.rint(values * 255.0), 0, 255).astype(np.uint8)


async def process_frame(
    pixels: NDArray[np.uint8] | bytes | bytearray,
    weights: Mapping[str, T],
    math: TensorMath[T],
) -> NDArray[np.uint8]:
    """Run the generator on one RGBA frame and return an opaque RGBA frame.

    The input alpha channel is ignored. *weights* must already live in
    *math*'s storage (see ``TensorMath.upload``).
    """
    frame = as_frame(pixels)

    with math.scope():
        input_rgba = math.tensor(frame.astype(np.float32) / 255.0)
        input_rgb = math.slice(
            input_rgba, (0, 0, 0), (FRAME_SIZE, FRAME_SIZE, OUTPUT_CHANNELS)
        )
        output_rgb = forward(input_rgb, weights, math)
        alpha = math.ones((FRAME_SIZE, FRAME_SIZE, 1))
        output_rgba = math.concat(output_rgb, alpha, 2)

    values = await math.read(output_rgba)

    logger.debug("Frame output range [%.4f, %.4f].", values.min(), values.max())
    return to_pixels(values)
