"""
Contour-based plane candidates.

Finds roughly rectangular regions (door panels, picture-free wall sections,
cabinet fronts) with Canny edges and polygon approximation. Candidates
complement the whole-frame classification: they point at *where* in the
frame a placement is likely to land well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)


@dataclass
class ContourConfig:
    """Configuration for contour plane detection."""

    blur_kernel: Tuple[int, int] = (5, 5)
    canny_low: int = 50
    canny_high: int = 150
    min_area: float = 5000.0
    max_area: float = 500000.0
    approx_epsilon: float = 0.02  # Fraction of the perimeter
    wall_aspect_ratio: float = 1.5  # width/height below this counts as a wall
    reference_area: float = 50000.0
    max_candidates: int = 10

    def __post_init__(self):
        self.blur_kernel = tuple(self.blur_kernel)
        if self.min_area > self.max_area:
            raise ValueError("min_area must not exceed max_area")


@dataclass(frozen=True)
class PlaneCandidate:
    """A quadrilateral region that may be a flat surface."""

    area: float
    center: Tuple[float, float]  # pixels
    normalized: Tuple[float, float]  # [-1, 1], y up
    rect: Tuple[int, int, int, int]  # x, y, w, h
    is_wall: bool
    confidence: float


class ContourPlaneDetector:
    """Detects quadrilateral plane candidates in a frame."""

    def __init__(self, config: Optional[Union[ContourConfig, Dict]] = None):
        if isinstance(config, ContourConfig):
            self.config = config
        else:
            cfg = dict(config or {})
            self.config = ContourConfig(**{
                k: v for k, v in cfg.items()
                if k in ContourConfig.__dataclass_fields__
            })

    def detect(self, frame: Optional[np.ndarray]) -> List[PlaneCandidate]:
        """Detect plane candidates.

        Args:
            frame: ``(H, W, 4)`` RGBA, ``(H, W, 3)`` RGB or ``(H, W)`` grey uint8 image

        Returns:
            Candidates sorted by confidence (highest first); empty when the
            frame is unusable
        """
        gray = self._to_gray(frame)
        if gray is None:
            return []

        cfg = self.config
        height, width = gray.shape
        blurred = cv2.GaussianBlur(gray, cfg.blur_kernel, 0)
        edges = cv2.Canny(blurred, cfg.canny_low, cfg.canny_high)
        contours, _ = cv2.findContours(edges, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)

        candidates: List[PlaneCandidate] = []
        for contour in contours:
            area = float(cv2.contourArea(contour))
            if area < cfg.min_area or area > cfg.max_area:
                continue

            epsilon = cfg.approx_epsilon * cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, epsilon, True)
            if len(approx) != 4:
                continue

            x, y, w, h = cv2.boundingRect(contour)
            cx = x + w / 2.0
            cy = y + h / 2.0
            is_wall = (w / float(h)) < cfg.wall_aspect_ratio if h > 0 else False
            confidence = min(area / cfg.reference_area, 1.0) * 0.7 + (0.3 if is_wall else 0.1)

            candidates.append(PlaneCandidate(
                area=area,
                center=(cx, cy),
                normalized=((cx / width) * 2 - 1, -(cy / height) * 2 + 1),
                rect=(int(x), int(y), int(w), int(h)),
                is_wall=is_wall,
                confidence=float(confidence),
            ))

        candidates.sort(key=lambda c: c.confidence, reverse=True)
        if candidates:
            LOGGER.debug("Found %d plane candidates (best %.2f)", len(candidates), candidates[0].confidence)
        return candidates[: cfg.max_candidates]

    @staticmethod
    def _to_gray(frame: Optional[np.ndarray]) -> Optional[np.ndarray]:
        if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
            return None
        if frame.dtype != np.uint8:
            frame = np.clip(frame, 0, 255).astype(np.uint8)
        if frame.ndim == 2:
            return frame
        if frame.ndim == 3 and frame.shape[2] == 4:
            return cv2.cvtColor(frame, cv2.COLOR_RGBA2GRAY)
        if frame.ndim == 3 and frame.shape[2] == 3:
            return cv2.cvtColor(frame, cv2.COLOR_RGB2GRAY)
        return None
