from __future__ import annotations

from collections.abc import Callable

import numpy as np
import pytest
from numpy.typing import NDArray

from gif2gif.architecture import generator_descriptors
from gif2gif.backends import TorchTensorMath

GeneratorFactory = Callable[..., dict[str, NDArray[np.float32]]]


def build_generator(
    fill: str = "random", ngf: int = 1, seed: int = 0
) -> dict[str, NDArray[np.float32]]:
    """Generator weights with the pix2pix layout at a small filter count.

    ``fill="zeros"`` gives zero kernels and biases with gamma=1, beta=0.
    """
    rng = np.random.default_rng(seed)
    arrays: dict[str, NDArray[np.float32]] = {}
    for descriptor in generator_descriptors(ngf):
        if fill == "zeros":
            value = 1.0 if descriptor.name.endswith("/gamma") else 0.0
            arrays[descriptor.name] = np.full(descriptor.shape, value, np.float32)
        elif descriptor.name.endswith("/gamma"):
            arrays[descriptor.name] = np.ones(descriptor.shape, np.float32)
        else:
            arrays[descriptor.name] = (
                rng.standard_normal(descriptor.shape).astype(np.float32) * 0.1
            )
    return arrays


@pytest.fixture
def make_generator() -> GeneratorFactory:
    return build_generator


@pytest.fixture
def math() -> TorchTensorMath:
    return TorchTensorMath("cpu")
