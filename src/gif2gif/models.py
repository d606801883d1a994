from __future__ import annotations

from collections.abc import Iterator, Mapping
from math import prod
from typing import Annotated

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, PositiveInt


class TensorDescriptor(BaseModel):
    """Name and shape of one tensor in a weight file."""

    model_config = ConfigDict(strict=True, frozen=True)

    name: str
    shape: Annotated[tuple[PositiveInt, ...], Field(min_length=1)]

    @property
    def size(self) -> int:
        return prod(self.shape)


class WeightMap(Mapping[str, NDArray[np.float32]]):
    """Immutable name → float32 array mapping decoded from one weight source.

    Arrays are marked read-only; iteration follows declaration order.
    """

    def __init__(
        self, tensors: Mapping[str, NDArray[np.float32]], source: str = ""
    ) -> None:
        frozen: dict[str, NDArray[np.float32]] = {}
        for name, values in tensors.items():
            array = np.array(values, dtype=np.float32)
            array.flags.writeable = False
            frozen[name] = array
        self._tensors = frozen
        self._source = source

    @property
    def source(self) -> str:
        return self._source

    @property
    def total_params(self) -> int:
        return sum(int(array.size) for array in self._tensors.values())

    def __getitem__(self, name: str) -> NDArray[np.float32]:
        return self._tensors[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tensors)

    def __len__(self) -> int:
        return len(self._tensors)

    def __repr__(self) -> str:
        return (
            f"WeightMap(source={self._source!r}, tensors={len(self)}, "
            f"params={self.total_params})"
        )
