from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

import numpy as np
from numpy.typing import NDArray

from gif2gif.contracts import ProgressCallback, TensorMath
from gif2gif.frames import process_frame
from gif2gif.weight_store import WeightStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

FrameCallback = Callable[[int, int], None]
"""Called with ``(frames_done, frames_total)`` after each frame."""


async def process_all(
    frames: Sequence[NDArray[np.uint8] | bytes | bytearray],
    model_source: str,
    *,
    store: WeightStore,
    math: TensorMath[T],
    progress: ProgressCallback | None = None,
    on_frame: FrameCallback | None = None,
) -> list[NDArray[np.uint8]]:
    """Translate every frame with the model at *model_source*.

    Weights are loaded once and frames run one at a time in input order.
    Any failure propagates; no partial result is returned.
    """
    if not frames:
        logger.info("No frames to process; skipping weight load.")
        return []

    weights = await store.get_weights(model_source, progress)
    device_weights = math.upload(weights)

    total = len(frames)
    logger.info("Processing %d frames with %s.", total, model_source)
    outputs: list[NDArray[np.uint8]] = []
    for index, frame in enumerate(frames):
        outputs.append(await process_frame(frame, device_weights, math))
        logger.debug("Processed frame %d/%d.", index + 1, total)
        if on_frame is not None:
            on_frame(index + 1, total)

    logger.info("Completed %d frames.", total)
    return outputs
