from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import cast

import numpy as np
import torch
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def tensor_to_numpy(tensor: torch.Tensor) -> NDArray[np.float32]:
    """Convert a PyTorch tensor to a float32 numpy array of the same shape.

    Avoids unnecessary copies: when the tensor is already float32,
    contiguous, and on CPU, ``numpy()`` is zero-copy.
    """
    t = tensor.detach()
    if not t.is_cpu:
        t = t.cpu()
    if not t.is_contiguous():
        t = t.contiguous()
    if t.dtype != torch.float32:
        t = t.to(torch.float32)
    return t.numpy()


def load_state_dict(path: str | Path) -> dict[str, NDArray[np.float32]]:
    """Load the floating-point tensors of a ``.pth`` state dict as numpy."""
    checkpoint = torch.load(Path(path), weights_only=True, map_location="cpu")
    if not isinstance(checkpoint, Mapping):
        raise TypeError(f"Expected {path} to hold a mapping of tensors.")

    arrays: dict[str, NDArray[np.float32]] = {}
    for name, tensor in cast(Mapping[str, object], checkpoint).items():
        if not isinstance(tensor, torch.Tensor):
            logger.debug("Skipping non-tensor entry %s.", name)
            continue
        if not tensor.is_floating_point():
            logger.debug(
                "Skipping non-float tensor %s (dtype=%s).", name, tensor.dtype
            )
            continue
        arrays[str(name)] = tensor_to_numpy(tensor)
    logger.info("Loaded %d tensors from %s.", len(arrays), path)
    return arrays
