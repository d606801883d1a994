from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TypeVar

from gif2gif.architecture import (
    ENCODER_STAGES,
    SKIP_CONNECTIONS,
    decoder_scope,
    encoder_scope,
)
from gif2gif.contracts import TensorMath
from gif2gif.errors import ShapeError
from gif2gif.settings import FRAME_SIZE

logger = logging.getLogger(__name__)

T = TypeVar("T")

OUTPUT_CHANNELS = 3
VARIANCE_EPSILON = 1e-5
LEAKY_SLOPE = 0.2
STRIDES = (2, 2)


def _weight(weights: Mapping[str, T], name: str) -> T:
    try:
        return weights[name]
    except KeyError:
        raise ShapeError(f"Weight tensor {name!r} is missing.") from None


def _batchnorm(math: TensorMath[T], x: T, scale: T, offset: T) -> T:
    mean, variance = math.moments(x, (0, 1))
    return math.batch_normalization(
        x, mean, variance, VARIANCE_EPSILON, scale, offset
    )


def _conv(math: TensorMath[T], x: T, kernel: T, bias: T) -> T:
    return math.conv2d(x, kernel, bias, STRIDES, "same")


def _deconv(math: TensorMath[T], x: T, kernel: T, bias: T) -> T:
    height, width = math.shape(x)[:2]
    depth = math.shape(kernel)[2]
    convolved = math.conv2d_transpose(
        x, kernel, (height * 2, width * 2, depth), STRIDES, "same"
    )
    return math.add(convolved, bias)


def forward(x: T, weights: Mapping[str, T], math: TensorMath[T]) -> T:
    """Run the U-Net generator on one ``(256, 256, 3)`` image in [0, 1].

    Returns a ``(256, 256, 3)`` tensor in [0, 1]. The decoder applies no
    dropout; the trained weights expect that.
    """
    preprocessed = math.subtract(math.multiply(x, 2.0), 1.0)

    layers: list[T] = []

    scope = encoder_scope(1)
    layers.append(
        _conv(
            math,
            preprocessed,
            _weight(weights, f"{scope}/conv2d/kernel"),
            _weight(weights, f"{scope}/conv2d/bias"),
        )
    )

    for stage in range(2, ENCODER_STAGES + 1):
        scope = encoder_scope(stage)
        rectified = math.leaky_relu(layers[-1], LEAKY_SLOPE)
        convolved = _conv(
            math,
            rectified,
            _weight(weights, f"{scope}/conv2d/kernel"),
            _weight(weights, f"{scope}/conv2d/bias"),
        )
        layers.append(
            _batchnorm(
                math,
                convolved,
                _weight(weights, f"{scope}/batch_normalization/gamma"),
                _weight(weights, f"{scope}/batch_normalization/beta"),
            )
        )
        logger.debug("Encoder stage %d -> %s.", stage, math.shape(layers[-1]))

    for stage in range(ENCODER_STAGES, 0, -1):
        scope = decoder_scope(stage)
        skip = SKIP_CONNECTIONS[stage]
        if skip is None:
            layer_input = layers[-1]
        else:
            layer_input = math.concat(layers[-1], layers[skip], 2)
        rectified = math.relu(layer_input)
        convolved = _deconv(
            math,
            rectified,
            _weight(weights, f"{scope}/conv2d_transpose/kernel"),
            _weight(weights, f"{scope}/conv2d_transpose/bias"),
        )
        if stage == 1:
            layers.append(math.tanh(convolved))
        else:
            layers.append(
                _batchnorm(
                    math,
                    convolved,
                    _weight(weights, f"{scope}/batch_normalization/gamma"),
                    _weight(weights, f"{scope}/batch_normalization/beta"),
                )
            )
        logger.debug("Decoder stage %d -> %s.", stage, math.shape(layers[-1]))

    output = math.divide(math.add(layers[-1], 1.0), 2.0)

    expected = (FRAME_SIZE, FRAME_SIZE, OUTPUT_CHANNELS)
    if math.shape(output) != expected:
        raise ShapeError(
            f"Generator produced shape {math.shape(output)}, expected {expected}."
        )
    return output
