from .frame_codec import FrameDecoder, FrameEncoder
from .tensor_math import TensorMath
from .weight_fetcher import ProgressCallback, WeightFetcher

__all__ = [
    "FrameDecoder",
    "FrameEncoder",
    "ProgressCallback",
    "TensorMath",
    "WeightFetcher",
]
