from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np


@dataclass
class FramePacket:
    frame: np.ndarray
    wall_time_iso: str
    monotonic_ns: int


class FrameSource(ABC):
    @abstractmethod
    def open(self, locator: str) -> None:
        """Open the stream; raises AcquisitionFailed when it cannot be opened."""
        raise NotImplementedError

    @abstractmethod
    def read_frame(self) -> FramePacket | None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    def health(self) -> dict[str, object]:
        return {}
