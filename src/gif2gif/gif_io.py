from __future__ import annotations

import io
import logging
from collections.abc import Callable, Sequence

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageSequence, UnidentifiedImageError

from gif2gif.contracts import FrameDecoder, FrameEncoder
from gif2gif.errors import ShapeError
from gif2gif.frames import as_frame
from gif2gif.settings import FRAME_SIZE

logger = logging.getLogger(__name__)


class GifFrameDecoder(FrameDecoder):
    """Decode an animated image into square RGBA frames.

    Frames are composited cumulatively by Pillow and resized to the model
    resolution.
    """

    def __init__(self, size: int = FRAME_SIZE) -> None:
        self._size = size

    def decode(self, data: bytes) -> list[NDArray[np.uint8]]:
        try:
            image = Image.open(io.BytesIO(data))
        except UnidentifiedImageError as exc:
            raise ValueError(f"Input is not a readable image: {exc}") from exc

        frames: list[NDArray[np.uint8]] = []
        with image:
            try:
                for frame in ImageSequence.Iterator(image):
                    rgba = frame.convert("RGBA").resize(
                        (self._size, self._size), Image.Resampling.BILINEAR
                    )
                    frames.append(np.array(rgba, dtype=np.uint8))
            except OSError as exc:
                raise ValueError(
                    f"Input image is damaged after {len(frames)} frames: {exc}"
                ) from exc
        logger.info(
            "Decoded %d frames from a %dx%d image.",
            len(frames),
            image.width,
            image.height,
        )
        return frames


class GifFrameEncoder(FrameEncoder):
    """Encode RGBA frames as a looping animated GIF."""

    def encode(
        self,
        frames: Sequence[NDArray[np.uint8]],
        delay_ms: int,
        on_finished: Callable[[bytes], None] | None = None,
    ) -> bytes:
        if not frames:
            raise ShapeError("Cannot encode an animation with no frames.")

        images = [Image.fromarray(as_frame(frame)).convert("RGB") for frame in frames]
        buffer = io.BytesIO()
        images[0].save(
            buffer,
            format="GIF",
            save_all=True,
            append_images=images[1:],
            duration=delay_ms,
            loop=0,
        )
        blob = buffer.getvalue()
        logger.info("Encoded %d frames into %d bytes.", len(images), len(blob))
        if on_finished is not None:
            on_finished(blob)
        return blob
