from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray


class FrameDecoder(ABC):
    """Split an animation into fixed-size RGBA frames."""

    @abstractmethod
    def decode(self, data: bytes) -> list[NDArray[np.uint8]]:
        raise NotImplementedError


class FrameEncoder(ABC):
    """Assemble RGBA frames into an animation blob."""

    @abstractmethod
    def encode(
        self,
        frames: Sequence[NDArray[np.uint8]],
        delay_ms: int,
        on_finished: Callable[[bytes], None] | None = None,
    ) -> bytes:
        raise NotImplementedError
