from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

import numpy as np
import torch
import torch.nn.functional as F
from numpy.typing import NDArray

from gif2gif.contracts import TensorMath
from gif2gif.contracts.tensor_math import Padding
from gif2gif.errors import ShapeError

logger = logging.getLogger(__name__)


def same_padding(size: int, kernel: int, stride: int) -> tuple[int, int]:
    """TensorFlow "same" padding ``(before, after)`` for one spatial axis.

    The odd pixel, if any, goes after.
    """
    out = math.ceil(size / stride)
    total = max((out - 1) * stride + kernel - size, 0)
    return total // 2, total - total // 2


def _to_nchw(x: torch.Tensor) -> torch.Tensor:
    return x.permute(2, 0, 1).unsqueeze(0)


def _to_hwc(x: torch.Tensor) -> torch.Tensor:
    return x.squeeze(0).permute(1, 2, 0)


def _filter(kernel: torch.Tensor) -> torch.Tensor:
    # [kh, kw, a, b] -> [b, a, kh, kw]
    return kernel.permute(3, 2, 0, 1)


def _require_rank(x: torch.Tensor, rank: int, what: str) -> None:
    if x.dim() != rank:
        raise ShapeError(f"{what} must have rank {rank}, got shape {tuple(x.shape)}.")


class TorchTensorMath(TensorMath[torch.Tensor]):
    """TensorMath over torch tensors laid out height × width × channels."""

    def __init__(self, device: str | torch.device = "cpu") -> None:
        self._device = torch.device(device)

    @property
    def device(self) -> torch.device:
        return self._device

    def tensor(self, values: NDArray[np.floating]) -> torch.Tensor:
        array = np.array(values, dtype=np.float32)
        return torch.from_numpy(array).to(self._device)

    def shape(self, x: torch.Tensor) -> tuple[int, ...]:
        return tuple(x.shape)

    def ones(self, shape: Sequence[int]) -> torch.Tensor:
        return torch.ones(tuple(shape), dtype=torch.float32, device=self._device)

    def _binary(
        self,
        op: Callable[[torch.Tensor, torch.Tensor | float], torch.Tensor],
        a: torch.Tensor,
        b: torch.Tensor | float,
    ) -> torch.Tensor:
        try:
            return op(a, b)
        except RuntimeError as exc:
            other = tuple(b.shape) if isinstance(b, torch.Tensor) else ()
            raise ShapeError(
                f"Cannot broadcast {tuple(a.shape)} with {other}: {exc}"
            ) from exc

    def add(self, a: torch.Tensor, b: torch.Tensor | float) -> torch.Tensor:
        return self._binary(torch.add, a, b)

    def subtract(self, a: torch.Tensor, b: torch.Tensor | float) -> torch.Tensor:
        return self._binary(torch.sub, a, b)

    def multiply(self, a: torch.Tensor, b: torch.Tensor | float) -> torch.Tensor:
        return self._binary(torch.mul, a, b)

    def divide(self, a: torch.Tensor, b: torch.Tensor | float) -> torch.Tensor:
        return self._binary(torch.div, a, b)

    def conv2d(
        self,
        x: torch.Tensor,
        kernel: torch.Tensor,
        bias: torch.Tensor | None,
        strides: tuple[int, int],
        padding: Padding,
    ) -> torch.Tensor:
        _require_rank(x, 3, "conv2d input")
        _require_rank(kernel, 4, "conv2d kernel")
        kh, kw, in_channels, out_channels = kernel.shape
        if x.shape[2] != in_channels:
            raise ShapeError(
                f"conv2d input has {x.shape[2]} channels, kernel expects {in_channels}."
            )
        if bias is not None and tuple(bias.shape) != (out_channels,):
            raise ShapeError(
                f"conv2d bias shape {tuple(bias.shape)} does not match "
                f"{out_channels} output channels."
            )

        nchw = _to_nchw(x)
        if padding == "same":
            top, bottom = same_padding(x.shape[0], kh, strides[0])
            left, right = same_padding(x.shape[1], kw, strides[1])
            nchw = F.pad(nchw, (left, right, top, bottom))
        out = F.conv2d(nchw, _filter(kernel), bias, stride=strides)
        return _to_hwc(out)

    def conv2d_transpose(
        self,
        x: torch.Tensor,
        kernel: torch.Tensor,
        output_shape: tuple[int, int, int],
        strides: tuple[int, int],
        padding: Padding,
    ) -> torch.Tensor:
        _require_rank(x, 3, "conv2d_transpose input")
        _require_rank(kernel, 4, "conv2d_transpose kernel")
        kh, kw, out_channels, in_channels = kernel.shape
        out_h, out_w, out_c = output_shape
        if x.shape[2] != in_channels:
            raise ShapeError(
                f"conv2d_transpose input has {x.shape[2]} channels, kernel "
                f"expects {in_channels}."
            )
        if out_c != out_channels:
            raise ShapeError(
                f"conv2d_transpose output depth {out_c} does not match kernel "
                f"depth {out_channels}."
            )

        crops: list[int] = []
        for size, out_size, k, stride in (
            (x.shape[0], out_h, kh, strides[0]),
            (x.shape[1], out_w, kw, strides[1]),
        ):
            if padding == "same":
                expected_in = math.ceil(out_size / stride)
                before, _ = same_padding(out_size, k, stride)
            else:
                expected_in = math.ceil((out_size - k + 1) / stride)
                before = 0
            if expected_in != size:
                raise ShapeError(
                    f"conv2d_transpose cannot map size {size} to {out_size} "
                    f"with stride {stride} and {padding!r} padding."
                )
            crops.append(before)

        full = F.conv_transpose2d(_to_nchw(x), _filter(kernel), stride=strides)
        top, left = crops
        out = full[:, :, top : top + out_h, left : left + out_w]
        return _to_hwc(out)

    def moments(
        self, x: torch.Tensor, axes: tuple[int, ...]
    ) -> tuple[torch.Tensor, torch.Tensor]:
        variance, mean = torch.var_mean(x, dim=axes, correction=0)
        return mean, variance

    def batch_normalization(
        self,
        x: torch.Tensor,
        mean: torch.Tensor,
        variance: torch.Tensor,
        epsilon: float,
        scale: torch.Tensor | None,
        offset: torch.Tensor | None,
    ) -> torch.Tensor:
        channels = x.shape[-1]
        for name, param in (
            ("mean", mean),
            ("variance", variance),
            ("scale", scale),
            ("offset", offset),
        ):
            if param is not None and tuple(param.shape) != (channels,):
                raise ShapeError(
                    f"batch_normalization {name} shape {tuple(param.shape)} "
                    f"does not match {channels} channels."
                )
        normalized = (x - mean) * torch.rsqrt(variance + epsilon)
        if scale is not None:
            normalized = normalized * scale
        if offset is not None:
            normalized = normalized + offset
        return normalized

    def relu(self, x: torch.Tensor) -> torch.Tensor:
        return F.relu(x)

    def leaky_relu(self, x: torch.Tensor, alpha: float) -> torch.Tensor:
        return F.leaky_relu(x, negative_slope=alpha)

    def tanh(self, x: torch.Tensor) -> torch.Tensor:
        return torch.tanh(x)

    def concat(self, a: torch.Tensor, b: torch.Tensor, axis: int) -> torch.Tensor:
        if a.dim() != b.dim():
            raise ShapeError(
                f"Cannot concat rank {a.dim()} with rank {b.dim()}."
            )
        axis = axis % a.dim()
        for dim, (left, right) in enumerate(zip(a.shape, b.shape, strict=True)):
            if dim != axis and left != right:
                raise ShapeError(
                    f"Cannot concat {tuple(a.shape)} with {tuple(b.shape)} "
                    f"along axis {axis}."
                )
        return torch.cat((a, b), dim=axis)

    def slice(
        self, x: torch.Tensor, begin: Sequence[int], size: Sequence[int]
    ) -> torch.Tensor:
        if len(begin) != x.dim() or len(size) != x.dim():
            raise ShapeError(
                f"slice begin/size must have {x.dim()} entries, got "
                f"{len(begin)}/{len(size)}."
            )
        index: list[slice] = []
        for start, length, extent in zip(begin, size, x.shape, strict=True):
            stop = extent if length == -1 else start + length
            if start < 0 or stop > extent or stop < start:
                raise ShapeError(
                    f"slice [{start}, {stop}) out of bounds for extent {extent}."
                )
            index.append(slice(start, stop))
        return x[tuple(index)]

    @contextmanager
    def scope(self) -> Iterator[None]:
        with torch.no_grad():
            try:
                yield
            finally:
                if self._device.type == "cuda":
                    torch.cuda.empty_cache()
                    logger.debug("Released cached device memory on %s.", self._device)

    async def read(self, x: torch.Tensor) -> NDArray[np.float32]:
        def _copy() -> NDArray[np.float32]:
            return x.detach().to("cpu", torch.float32).numpy().copy()

        return await asyncio.to_thread(_copy)
