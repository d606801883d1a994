from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from gif2gif.models import TensorDescriptor

ENCODER_STAGES = 8
KERNEL_SIZE = 4

SKIP_CONNECTIONS: Mapping[int, int | None] = {
    8: None,
    7: 6,
    6: 5,
    5: 4,
    4: 3,
    3: 2,
    2: 1,
    1: 0,
}
"""Decoder stage → LayerStack index concatenated onto its input.

LayerStack index ``n`` holds the output of encoder stage ``n + 1``.
"""


class _Shaped(Protocol):
    @property
    def shape(self) -> tuple[int, ...]: ...


def encoder_scope(stage: int) -> str:
    return f"generator/encoder_{stage}"


def decoder_scope(stage: int) -> str:
    return f"generator/decoder_{stage}"


def _encoder_channels(ngf: int) -> dict[int, int]:
    multipliers = (1, 2, 4, 8, 8, 8, 8, 8)
    return {stage: ngf * m for stage, m in enumerate(multipliers, start=1)}


def _decoder_channels(ngf: int, out_channels: int) -> dict[int, int]:
    return {
        8: ngf * 8,
        7: ngf * 8,
        6: ngf * 8,
        5: ngf * 8,
        4: ngf * 4,
        3: ngf * 2,
        2: ngf,
        1: out_channels,
    }


def generator_descriptors(
    ngf: int = 64, in_channels: int = 3, out_channels: int = 3
) -> list[TensorDescriptor]:
    """Every tensor the generator reads, with the pix2pix channel plan."""
    k = KERNEL_SIZE
    enc = _encoder_channels(ngf)
    dec = _decoder_channels(ngf, out_channels)
    descriptors: list[TensorDescriptor] = []

    previous = in_channels
    for stage in range(1, ENCODER_STAGES + 1):
        scope = encoder_scope(stage)
        channels = enc[stage]
        descriptors.append(
            TensorDescriptor(
                name=f"{scope}/conv2d/kernel", shape=(k, k, previous, channels)
            )
        )
        descriptors.append(
            TensorDescriptor(name=f"{scope}/conv2d/bias", shape=(channels,))
        )
        if stage > 1:
            for param in ("gamma", "beta"):
                descriptors.append(
                    TensorDescriptor(
                        name=f"{scope}/batch_normalization/{param}",
                        shape=(channels,),
                    )
                )
        previous = channels

    for stage in range(ENCODER_STAGES, 0, -1):
        scope = decoder_scope(stage)
        skip = SKIP_CONNECTIONS[stage]
        if skip is not None:
            previous += enc[skip + 1]
        channels = dec[stage]
        descriptors.append(
            TensorDescriptor(
                name=f"{scope}/conv2d_transpose/kernel",
                shape=(k, k, channels, previous),
            )
        )
        descriptors.append(
            TensorDescriptor(name=f"{scope}/conv2d_transpose/bias", shape=(channels,))
        )
        if stage > 1:
            for param in ("gamma", "beta"):
                descriptors.append(
                    TensorDescriptor(
                        name=f"{scope}/batch_normalization/{param}",
                        shape=(channels,),
                    )
                )
        previous = channels

    return descriptors


def infer_ngf(weights: Mapping[str, _Shaped]) -> int | None:
    """Read the base filter count off the first encoder kernel."""
    kernel = weights.get(f"{encoder_scope(1)}/conv2d/kernel")
    if kernel is None or len(kernel.shape) != 4:
        return None
    return int(kernel.shape[3])


def missing_tensors(
    weights: Mapping[str, _Shaped], ngf: int | None = None
) -> list[str]:
    """List generator tensors that are absent or mis-shaped in *weights*."""
    if ngf is None:
        ngf = infer_ngf(weights)
    if ngf is None:
        return [f"{encoder_scope(1)}/conv2d/kernel: missing"]

    problems: list[str] = []
    for descriptor in generator_descriptors(ngf):
        actual = weights.get(descriptor.name)
        if actual is None:
            problems.append(f"{descriptor.name}: missing")
        elif tuple(actual.shape) != descriptor.shape:
            problems.append(
                f"{descriptor.name}: expected {descriptor.shape}, "
                f"got {tuple(actual.shape)}"
            )
    return problems
