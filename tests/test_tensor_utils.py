from __future__ import annotations

from collections import OrderedDict
from pathlib import Path

import numpy as np
import pytest
import torch

from gif2gif.tensor_utils import load_state_dict, tensor_to_numpy


def test_zero_copy_float32_contiguous_cpu() -> None:
    """float32 contiguous CPU tensor should share memory (zero-copy)."""
    t = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float32)
    arr = tensor_to_numpy(t)
    assert arr.dtype == np.float32
    assert np.shares_memory(arr, t.numpy())


def test_float16_produces_float32_copy() -> None:
    t = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float16)
    arr = tensor_to_numpy(t)
    assert arr.dtype == np.float32
    np.testing.assert_allclose(arr, [1.0, 2.0, 3.0], atol=1e-3)


def test_shape_is_preserved() -> None:
    t = torch.zeros((4, 4, 3, 2), dtype=torch.float32)
    assert tensor_to_numpy(t).shape == (4, 4, 3, 2)


def test_non_contiguous_tensor() -> None:
    t = torch.tensor([[1.0, 2.0], [3.0, 4.0]], dtype=torch.float32).t()
    assert not t.is_contiguous()
    arr = tensor_to_numpy(t)
    np.testing.assert_array_equal(arr, [[1.0, 3.0], [2.0, 4.0]])


def test_load_state_dict_skips_non_float_tensors(tmp_path: Path) -> None:
    state: OrderedDict[str, torch.Tensor] = OrderedDict(
        kernel=torch.ones((2, 2), dtype=torch.float64),
        step=torch.tensor(3, dtype=torch.int64),
    )
    path = tmp_path / "model.pth"
    torch.save(state, path)

    arrays = load_state_dict(path)

    assert list(arrays) == ["kernel"]
    assert arrays["kernel"].dtype == np.float32
    assert arrays["kernel"].shape == (2, 2)


def test_load_state_dict_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.pth"
    torch.save([torch.ones(2)], path)

    with pytest.raises(TypeError):
        load_state_dict(path)
