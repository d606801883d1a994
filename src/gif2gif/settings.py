from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

FRAME_SIZE = 256
FRAME_CHANNELS = 4
FRAME_DELAY_MS = 200
DEFAULT_MODEL_SOURCE = "edges2cats_AtoB.pict"


class Settings(BaseModel):
    """Runtime configuration for a gif2gif run."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    model_source: str = DEFAULT_MODEL_SOURCE
    frame_size: Literal[256] = FRAME_SIZE
    frame_delay_ms: int = Field(default=FRAME_DELAY_MS, gt=0)
    device: str = "cpu"
    fetch_timeout: float = Field(default=30.0, gt=0)
