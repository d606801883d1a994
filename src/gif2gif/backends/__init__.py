from .torch_math import TorchTensorMath

__all__ = ["TorchTensorMath"]
