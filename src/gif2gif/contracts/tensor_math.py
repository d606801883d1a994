from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Generic, Literal, TypeVar

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

T = TypeVar("T")

Padding = Literal["same", "valid"]


class TensorMath(ABC, Generic[T]):
    """Numeric backend consumed by the forward pass.

    Tensors are height × width × channels. Every operation returns a new
    tensor and leaves its operands untouched.
    """

    @abstractmethod
    def tensor(self, values: NDArray[np.floating]) -> T:
        """Copy a numpy array into backend storage."""
        raise NotImplementedError

    def upload(self, weights: Mapping[str, NDArray[np.floating]]) -> dict[str, T]:
        """Copy a whole weight mapping into backend storage."""
        return {name: self.tensor(values) for name, values in weights.items()}

    @abstractmethod
    def shape(self, x: T) -> tuple[int, ...]:
        raise NotImplementedError

    @abstractmethod
    def ones(self, shape: Sequence[int]) -> T:
        raise NotImplementedError

    @abstractmethod
    def add(self, a: T, b: T | float) -> T:
        raise NotImplementedError

    @abstractmethod
    def subtract(self, a: T, b: T | float) -> T:
        raise NotImplementedError

    @abstractmethod
    def multiply(self, a: T, b: T | float) -> T:
        raise NotImplementedError

    @abstractmethod
    def divide(self, a: T, b: T | float) -> T:
        raise NotImplementedError

    @abstractmethod
    def conv2d(
        self,
        x: T,
        kernel: T,
        bias: T | None,
        strides: tuple[int, int],
        padding: Padding,
    ) -> T:
        """2D convolution with a ``[kh, kw, in, out]`` kernel."""
        raise NotImplementedError

    @abstractmethod
    def conv2d_transpose(
        self,
        x: T,
        kernel: T,
        output_shape: tuple[int, int, int],
        strides: tuple[int, int],
        padding: Padding,
    ) -> T:
        """2D transposed convolution with a ``[kh, kw, out, in]`` kernel."""
        raise NotImplementedError

    @abstractmethod
    def moments(self, x: T, axes: tuple[int, ...]) -> tuple[T, T]:
        """Return ``(mean, variance)`` reduced over *axes*."""
        raise NotImplementedError

    @abstractmethod
    def batch_normalization(
        self,
        x: T,
        mean: T,
        variance: T,
        epsilon: float,
        scale: T | None,
        offset: T | None,
    ) -> T:
        raise NotImplementedError

    @abstractmethod
    def relu(self, x: T) -> T:
        raise NotImplementedError

    @abstractmethod
    def leaky_relu(self, x: T, alpha: float) -> T:
        raise NotImplementedError

    @abstractmethod
    def tanh(self, x: T) -> T:
        raise NotImplementedError

    @abstractmethod
    def concat(self, a: T, b: T, axis: int) -> T:
        raise NotImplementedError

    @abstractmethod
    def slice(self, x: T, begin: Sequence[int], size: Sequence[int]) -> T:
        raise NotImplementedError

    @abstractmethod
    def scope(self) -> AbstractContextManager[None]:
        """Context in which scratch tensors are released on exit."""
        raise NotImplementedError

    @abstractmethod
    async def read(self, x: T) -> NDArray[np.float32]:
        """Move *x* out of backend storage into a float32 numpy array."""
        raise NotImplementedError
