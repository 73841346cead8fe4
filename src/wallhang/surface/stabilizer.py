"""
Temporal stabilisation of per-frame classifications.

A single frame can look like a wall because of motion blur or a lighting
flicker. The stabilizer keeps the last N classifications and only reports a
confirmed surface once at least M of them agree.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Union

import numpy as np

from .classifier import Classification, ReasonCode

LOGGER = logging.getLogger(__name__)


@dataclass
class StabilizerConfig:
    """Sliding window configuration."""

    history_size: int = 12  # N
    confirm_count: int = 8  # M

    def __post_init__(self):
        if self.history_size < 1:
            raise ValueError("history_size must be positive")
        if not 1 <= self.confirm_count <= self.history_size:
            raise ValueError(
                f"confirm_count must be in [1, {self.history_size}], got {self.confirm_count}"
            )


class TemporalStabilizer:
    """Debounces classifications with a fixed-capacity FIFO window."""

    def __init__(self, config: Optional[Union[StabilizerConfig, Dict]] = None):
        if isinstance(config, StabilizerConfig):
            self.config = config
        else:
            cfg = dict(config or {})
            self.config = StabilizerConfig(**{
                k: v for k, v in cfg.items()
                if k in StabilizerConfig.__dataclass_fields__
            })
        self.history: Deque[Classification] = deque(maxlen=self.config.history_size)
        self._lock = threading.Lock()
        LOGGER.info(
            "TemporalStabilizer initialized: confirm %d of %d frames",
            self.config.confirm_count,
            self.config.history_size,
        )

    def __len__(self) -> int:
        return len(self.history)

    @property
    def positive_count(self) -> int:
        return sum(1 for c in self.history if c.is_plane)

    @property
    def confirmed(self) -> bool:
        return self.positive_count >= self.config.confirm_count

    def push(self, classification: Classification) -> Classification:
        """Record a classification and return the stabilised view."""
        with self._lock:
            self.history.append(classification)
            return self._current()

    def current(self) -> Optional[Classification]:
        """Stabilised view of the window without adding to it."""
        with self._lock:
            if not self.history:
                return None
            return self._current()

    def reset(self):
        """Empty the window (e.g. when a new scanning phase starts)."""
        with self._lock:
            self.history.clear()

    def _current(self) -> Classification:
        latest = self.history[-1]
        positives = [c for c in self.history if c.is_plane]
        if len(positives) < self.config.confirm_count:
            return latest.with_stability(False)

        confidence = float(np.mean([c.confidence for c in positives]))
        LOGGER.debug("Surface confirmed: %d/%d positive", len(positives), len(self.history))
        return Classification(
            surface_type=positives[-1].surface_type,
            confidence=confidence,
            reason=ReasonCode.CONFIRMED,
            is_plane=True,
            stable=True,
            detail=f"{len(positives)}/{len(self.history)}",
        )
