import logging
import sys

from .errors import DecodeError, FetchError, Gif2GifError, ShapeError
from .forward import forward
from .frames import process_frame
from .models import TensorDescriptor, WeightMap
from .pipeline import process_all
from .weight_store import WeightStore

__all__ = [
    "DecodeError",
    "FetchError",
    "Gif2GifError",
    "ShapeError",
    "TensorDescriptor",
    "WeightMap",
    "WeightStore",
    "forward",
    "process_all",
    "process_frame",
]

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,
)
