"""
Per-frame surface metrics.

Turns a raw RGBA camera buffer into a compact set of numbers describing how
much the region in view looks like a flat, evenly lit, low-texture surface:

- Per-cell brightness, saturation and brightness uniformity over a small grid
- Cross-cell uniformity (do all cells agree?)
- Edge density from a Sobel gradient on a sparse sample grid
- Texture smoothness from a 4-neighbour Laplacian at the same samples
- Vertical brightness gradient as a floor/ceiling orientation cue
- Over/under-exposure ratios

Analysis runs at a small fixed resolution so its cost stays bounded
regardless of the camera resolution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)

PixelBuffer = Union[np.ndarray, bytes, bytearray, memoryview]


@dataclass
class AnalyzerConfiguration:
    """Configuration for the surface analyzer."""

    # Analysis resolution (frames are downsampled to fit inside it)
    analysis_width: int = 480
    analysis_height: int = 360

    # Region grid
    grid_rows: int = 3
    grid_cols: int = 3

    # Normalisation constants
    uniformity_variance_scale: float = 2000.0  # K1: cell variance giving zero uniformity
    cross_cell_variance_scale: float = 1000.0  # variance of cell means giving zero uniformity
    texture_scale: float = 20.0  # K2: mean |Laplacian| giving zero smoothness

    # Edge detection
    strong_edge_threshold: float = 120.0
    weak_edge_threshold: float = 40.0
    sample_step: int = 4  # Stride of the sparse sample grid (pixels)

    # Exposure
    overexposed_level: float = 240.0
    underexposed_level: float = 20.0

    def __post_init__(self):
        if self.analysis_width <= 0 or self.analysis_height <= 0:
            raise ValueError("Analysis resolution must be positive")
        if self.grid_rows < 1 or self.grid_cols < 1:
            raise ValueError("Grid must have at least one row and one column")
        if self.sample_step < 1:
            raise ValueError("sample_step must be >= 1")
        if self.weak_edge_threshold > self.strong_edge_threshold:
            raise ValueError("weak_edge_threshold must not exceed strong_edge_threshold")
        for name in ("uniformity_variance_scale", "cross_cell_variance_scale", "texture_scale"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


@dataclass(frozen=True)
class FrameMetrics:
    """Immutable metrics for one analysed frame."""

    ready: bool = True
    width: int = 0
    height: int = 0

    # Per-cell values in row-major order
    cell_brightness: Tuple[float, ...] = field(default_factory=tuple)
    cell_saturation: Tuple[float, ...] = field(default_factory=tuple)
    cell_uniformity: Tuple[float, ...] = field(default_factory=tuple)

    # Frame aggregates
    brightness: float = 0.0
    saturation: float = 0.0
    uniformity: float = 0.0
    cross_cell_uniformity: float = 0.0
    edge_density: float = 0.0
    weak_edge_density: float = 0.0
    texture: float = 0.0
    texture_smoothness: float = 0.0
    orientation_gradient: float = 0.0
    overexposed_ratio: float = 0.0
    underexposed_ratio: float = 0.0

    @classmethod
    def not_ready(cls) -> FrameMetrics:
        """Sentinel returned while the frame source has no usable data."""
        return cls(ready=False)

    @property
    def cell_count(self) -> int:
        return len(self.cell_brightness)

    @property
    def center_brightness(self) -> float:
        if not self.cell_brightness:
            return 0.0
        return self.cell_brightness[len(self.cell_brightness) // 2]

    def to_dict(self) -> Dict:
        return {
            "ready": self.ready,
            "width": self.width,
            "height": self.height,
            "brightness": self.brightness,
            "saturation": self.saturation,
            "uniformity": self.uniformity,
            "cross_cell_uniformity": self.cross_cell_uniformity,
            "edge_density": self.edge_density,
            "weak_edge_density": self.weak_edge_density,
            "texture_smoothness": self.texture_smoothness,
            "orientation_gradient": self.orientation_gradient,
            "overexposed_ratio": self.overexposed_ratio,
            "underexposed_ratio": self.underexposed_ratio,
        }


class SurfaceAnalyzer:
    """
    Computes FrameMetrics from raw pixel buffers.

    Stateless and deterministic: the same buffer always yields the same
    metrics. Unusable input never raises; it yields ``FrameMetrics.not_ready()``.
    """

    def __init__(self, config: Optional[Union[AnalyzerConfiguration, Dict]] = None):
        if isinstance(config, AnalyzerConfiguration):
            self.config = config
        else:
            cfg_dict = dict(config or {})
            self.config = AnalyzerConfiguration(**{
                k: v for k, v in cfg_dict.items()
                if k in AnalyzerConfiguration.__dataclass_fields__
            })

        LOGGER.info(
            "SurfaceAnalyzer initialized: resolution=%dx%d, grid=%dx%d",
            self.config.analysis_width,
            self.config.analysis_height,
            self.config.grid_rows,
            self.config.grid_cols,
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def analyze(self, pixels: Optional[PixelBuffer], width: int, height: int) -> FrameMetrics:
        """Analyze an RGBA (or RGB) frame.

        Args:
            pixels: ``(H, W, 4|3)`` uint8 array or a flat RGBA byte buffer
            width: Frame width in pixels
            height: Frame height in pixels

        Returns:
            FrameMetrics for the frame, or the not-ready sentinel
        """
        rgb = self._to_rgb(pixels, width, height)
        if rgb is None:
            return FrameMetrics.not_ready()

        rgb = self._downsample(rgb)
        h, w = rgb.shape[:2]
        cfg = self.config
        if h < max(cfg.grid_rows, 3) or w < max(cfg.grid_cols, 3):
            LOGGER.debug("Frame %dx%d too small for analysis", w, h)
            return FrameMetrics.not_ready()

        rgb_f = rgb.astype(np.float32)
        brightness = rgb_f.mean(axis=2)
        max_c = rgb_f.max(axis=2)
        min_c = rgb_f.min(axis=2)
        saturation = np.divide(
            max_c - min_c, max_c, out=np.zeros_like(max_c), where=max_c > 0
        )

        cell_b, cell_s, cell_u = self._cell_statistics(brightness, saturation)

        cross_variance = float(np.var(cell_b))
        cross_uniformity = max(0.0, 1.0 - cross_variance / cfg.cross_cell_variance_scale)

        ys = np.arange(1, h - 1, cfg.sample_step)
        xs = np.arange(1, w - 1, cfg.sample_step)
        strong, weak = self._edge_density(brightness, ys, xs)
        texture = self._texture(brightness, ys, xs)
        smoothness = max(0.0, 1.0 - texture / cfg.texture_scale)

        orientation = self._orientation_gradient(cell_b)

        sampled = brightness[np.ix_(ys, xs)]
        over = float(np.mean(sampled > cfg.overexposed_level))
        under = float(np.mean(sampled < cfg.underexposed_level))

        return FrameMetrics(
            ready=True,
            width=w,
            height=h,
            cell_brightness=tuple(cell_b),
            cell_saturation=tuple(cell_s),
            cell_uniformity=tuple(cell_u),
            brightness=float(np.mean(cell_b)),
            saturation=float(np.mean(cell_s)),
            uniformity=float(np.mean(cell_u)),
            cross_cell_uniformity=cross_uniformity,
            edge_density=strong,
            weak_edge_density=weak,
            texture=texture,
            texture_smoothness=smoothness,
            orientation_gradient=orientation,
            overexposed_ratio=over,
            underexposed_ratio=under,
        )

    # ------------------------------------------------------------------ #
    # Input handling
    # ------------------------------------------------------------------ #
    @staticmethod
    def _as_size(value) -> Optional[int]:
        """Integral frame dimension, or None when ``value`` is not a whole number."""
        try:
            size = float(value)
        except (TypeError, ValueError):
            return None
        if not size.is_integer() or size <= 0:
            return None
        return int(size)

    @classmethod
    def _to_rgb(cls, pixels: Optional[PixelBuffer], width: int, height: int) -> Optional[np.ndarray]:
        """Coerce the input into a contiguous ``(H, W, 3)`` uint8 array."""
        if pixels is None:
            return None
        width, height = cls._as_size(width), cls._as_size(height)
        if width is None or height is None:
            LOGGER.debug("Frame size is not a positive whole number")
            return None

        if isinstance(pixels, np.ndarray):
            arr = pixels
        else:
            try:
                arr = np.frombuffer(pixels, dtype=np.uint8)
            except (TypeError, ValueError):
                LOGGER.debug("Unsupported pixel buffer type %s", type(pixels).__name__)
                return None

        if arr.size == 0:
            return None

        if arr.ndim == 1:
            if arr.size != width * height * 4:
                LOGGER.debug(
                    "Buffer length %d does not match %dx%d RGBA", arr.size, width, height
                )
                return None
            arr = arr.reshape(height, width, 4)
        elif arr.ndim == 3 and arr.shape[2] in (3, 4):
            if arr.shape[0] != height or arr.shape[1] != width:
                LOGGER.debug(
                    "Array shape %s does not match declared size %dx%d", arr.shape, width, height
                )
                return None
        else:
            return None

        if arr.dtype != np.uint8:
            arr = np.clip(arr, 0, 255).astype(np.uint8)

        return np.ascontiguousarray(arr[:, :, :3])

    def _downsample(self, rgb: np.ndarray) -> np.ndarray:
        h, w = rgb.shape[:2]
        scale = min(
            self.config.analysis_width / float(w),
            self.config.analysis_height / float(h),
        )
        if scale >= 1.0:
            return rgb
        new_size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
        return cv2.resize(rgb, new_size, interpolation=cv2.INTER_AREA)

    # ------------------------------------------------------------------ #
    # Metric helpers
    # ------------------------------------------------------------------ #
    def _cell_statistics(self, brightness: np.ndarray, saturation: np.ndarray):
        h, w = brightness.shape
        rows, cols = self.config.grid_rows, self.config.grid_cols
        row_edges = np.linspace(0, h, rows + 1).astype(int)
        col_edges = np.linspace(0, w, cols + 1).astype(int)

        cell_b, cell_s, cell_u = [], [], []
        for r in range(rows):
            for c in range(cols):
                b = brightness[row_edges[r]:row_edges[r + 1], col_edges[c]:col_edges[c + 1]]
                s = saturation[row_edges[r]:row_edges[r + 1], col_edges[c]:col_edges[c + 1]]
                variance = float(np.var(b))
                cell_b.append(float(np.mean(b)))
                cell_s.append(float(np.mean(s)))
                cell_u.append(max(0.0, 1.0 - variance / self.config.uniformity_variance_scale))
        return cell_b, cell_s, cell_u

    def _edge_density(self, brightness: np.ndarray, ys: np.ndarray, xs: np.ndarray) -> Tuple[float, float]:
        gx = cv2.Sobel(brightness, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(brightness, cv2.CV_32F, 0, 1, ksize=3)
        magnitude = cv2.magnitude(gx, gy)[np.ix_(ys, xs)]
        strong = float(np.mean(magnitude > self.config.strong_edge_threshold))
        weak = float(np.mean(magnitude > self.config.weak_edge_threshold))
        return strong, weak

    @staticmethod
    def _texture(brightness: np.ndarray, ys: np.ndarray, xs: np.ndarray) -> float:
        # ksize=1 selects the 4-neighbour kernel [[0,1,0],[1,-4,1],[0,1,0]]
        laplacian = cv2.Laplacian(brightness, cv2.CV_32F, ksize=1)
        return float(np.mean(np.abs(laplacian[np.ix_(ys, xs)])))

    def _orientation_gradient(self, cell_brightness) -> float:
        """Bottom-row minus top-row brightness; positive leans floor-like."""
        rows, cols = self.config.grid_rows, self.config.grid_cols
        if rows < 2:
            return 0.0
        top = np.mean(cell_brightness[:cols])
        bottom = np.mean(cell_brightness[(rows - 1) * cols:])
        return float(bottom - top)
