"""
Rule-based surface classification.

Maps FrameMetrics to a Classification through an ordered rule table. The
first matching rule wins, and later rules rely on the earlier ones not
having fired (e.g. the plane test never sees an overexposed frame).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from .analyzer import FrameMetrics

LOGGER = logging.getLogger(__name__)

MAX_CONFIDENCE = 0.98


class SurfaceType(Enum):
    """Kinds of surface the classifier can report."""
    WALL = "wall"
    FLOOR = "floor"
    CEILING = "ceiling"
    OVEREXPOSED = "overexposed"
    UNDEREXPOSED = "underexposed"
    BUSY = "busy"
    UNCERTAIN = "uncertain"


class ReasonCode(Enum):
    """Why a classification was produced."""
    NOT_READY = "not_ready"
    OVEREXPOSED = "overexposed"
    UNDEREXPOSED = "underexposed"
    FLOOR_DETECTED = "floor_detected"
    CEILING_DETECTED = "ceiling_detected"
    TOO_BUSY = "too_busy"
    PLANE_FOUND = "plane_found"
    KEEP_MOVING = "keep_moving"
    CONFIRMED = "confirmed"


GUIDANCE_MESSAGES: Dict[ReasonCode, str] = {
    ReasonCode.NOT_READY: "Starting camera...",
    ReasonCode.OVEREXPOSED: "Too bright - avoid pointing at lights or windows",
    ReasonCode.UNDEREXPOSED: "Too dark - turn on a light",
    ReasonCode.FLOOR_DETECTED: "Looks like the floor - tilt up towards a wall",
    ReasonCode.CEILING_DETECTED: "Looks like the ceiling - tilt down towards a wall",
    ReasonCode.TOO_BUSY: "Too much detail - find a plain area",
    ReasonCode.PLANE_FOUND: "Surface found - hold steady",
    ReasonCode.KEEP_MOVING: "Keep moving the camera slowly",
    ReasonCode.CONFIRMED: "Surface confirmed - tap to place",
}


def clamp_confidence(value: float) -> float:
    return max(0.0, min(MAX_CONFIDENCE, float(value)))


@dataclass(frozen=True)
class Classification:
    """Result of classifying one frame (or a stabilised window of frames)."""

    surface_type: SurfaceType
    confidence: float
    reason: ReasonCode
    is_plane: bool = False
    stable: bool = False
    detail: str = ""

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))

    @classmethod
    def not_ready(cls) -> Classification:
        return cls(SurfaceType.UNCERTAIN, 0.0, ReasonCode.NOT_READY)

    @property
    def message(self) -> str:
        text = GUIDANCE_MESSAGES.get(self.reason, "")
        if self.detail:
            return f"{text} ({self.detail})"
        return text

    def with_stability(self, stable: bool) -> Classification:
        return replace(self, stable=stable)

    def to_dict(self) -> Dict:
        return {
            "surface_type": self.surface_type.value,
            "confidence": round(self.confidence, 4),
            "reason": self.reason.value,
            "is_plane": self.is_plane,
            "stable": self.stable,
            "message": self.message,
        }


@dataclass
class ClassificationThresholds:
    """Calibrated thresholds for the rule table."""

    # Exposure (rules 1-2)
    overexposed_ratio: float = 0.4
    underexposed_ratio: float = 0.4
    min_brightness: float = 30.0
    max_brightness: float = 235.0
    exposure_confidence: float = 0.05

    # Orientation (rule 3)
    floor_gradient_threshold: float = 25.0
    ceiling_gradient_threshold: float = 25.0
    floor_lean_threshold: float = 10.0
    allow_floor_placement: bool = False
    floor_confidence: float = 0.35
    ceiling_confidence: float = 0.2

    # Busy (rule 4)
    busy_edge_density: float = 0.15
    busy_weak_edge_density: float = 0.35
    busy_confidence: float = 0.15

    # Plane test (rule 5)
    min_uniformity: float = 0.6
    min_cross_cell_uniformity: float = 0.5
    min_texture_smoothness: float = 0.6
    max_saturation: float = 0.35
    brightness_target: float = 130.0
    brightness_falloff: float = 210.0
    weights: Tuple[float, float, float, float, float] = (0.25, 0.20, 0.25, 0.15, 0.15)

    # Fallback (rule 6)
    uncertain_confidence: float = 0.3

    def __post_init__(self):
        self.weights = tuple(float(w) for w in self.weights)
        if len(self.weights) != 5:
            raise ValueError("weights must have exactly five entries")
        if abs(sum(self.weights) - 1.0) > 1e-6:
            raise ValueError(f"weights must sum to 1, got {sum(self.weights):.4f}")
        if self.min_brightness >= self.max_brightness:
            raise ValueError("min_brightness must be below max_brightness")
        if self.brightness_falloff <= 0:
            raise ValueError("brightness_falloff must be positive")
        if self.floor_lean_threshold > self.floor_gradient_threshold:
            raise ValueError("floor_lean_threshold must not exceed floor_gradient_threshold")

    @classmethod
    def preset(cls, name: str, **overrides) -> ClassificationThresholds:
        """Named threshold sets replacing per-variant detector copies.

        - ``default``: balanced for typical indoor walls
        - ``strict``: fewer false positives, slower to confirm
        - ``lenient``: textured wallpaper and dim rooms
        """
        presets = {
            "default": {},
            "strict": {
                "min_uniformity": 0.75,
                "min_cross_cell_uniformity": 0.65,
                "min_texture_smoothness": 0.75,
                "max_saturation": 0.25,
                "busy_edge_density": 0.10,
                "busy_weak_edge_density": 0.25,
            },
            "lenient": {
                "min_uniformity": 0.45,
                "min_cross_cell_uniformity": 0.35,
                "min_texture_smoothness": 0.4,
                "max_saturation": 0.5,
                "min_brightness": 20.0,
                "busy_edge_density": 0.25,
                "busy_weak_edge_density": 0.5,
                "allow_floor_placement": True,
            },
        }
        key = name.lower()
        if key not in presets:
            raise ValueError(f"Unknown threshold preset: {name}")
        params = dict(presets[key])
        params.update(overrides)
        return cls(**params)


Rule = Tuple[str, Callable[[FrameMetrics], Optional[Classification]]]


class ClassificationEngine:
    """
    Deterministic ordered rule table over FrameMetrics.

    Rules, in order:
    1. overexposed
    2. underexposed
    3. floor / ceiling orientation
    4. busy (too many edges)
    5. plane test -> wall (or floor when allowed)
    6. uncertain ("keep moving")
    """

    def __init__(self, thresholds: Optional[Union[ClassificationThresholds, Dict]] = None):
        if isinstance(thresholds, ClassificationThresholds):
            self.thresholds = thresholds
        else:
            cfg = dict(thresholds or {})
            preset = cfg.pop("preset", "default")
            cfg = {k: v for k, v in cfg.items() if k in ClassificationThresholds.__dataclass_fields__}
            self.thresholds = ClassificationThresholds.preset(preset, **cfg)

        self.rules: List[Rule] = [
            ("overexposed", self._rule_overexposed),
            ("underexposed", self._rule_underexposed),
            ("orientation", self._rule_orientation),
            ("busy", self._rule_busy),
            ("plane", self._rule_plane),
        ]
        LOGGER.info(
            "ClassificationEngine initialized: floor placement %s",
            "allowed" if self.thresholds.allow_floor_placement else "disabled",
        )

    def classify(self, metrics: Optional[FrameMetrics]) -> Classification:
        """Classify one frame's metrics; never raises."""
        if metrics is None or not metrics.ready:
            return Classification.not_ready()

        for name, rule in self.rules:
            result = rule(metrics)
            if result is not None:
                LOGGER.debug("Rule '%s' matched: %s (%.2f)", name, result.surface_type.value, result.confidence)
                return result

        return Classification(
            SurfaceType.UNCERTAIN,
            self.thresholds.uncertain_confidence,
            ReasonCode.KEEP_MOVING,
        )

    # ------------------------------------------------------------------ #
    # Rules
    # ------------------------------------------------------------------ #
    def _rule_overexposed(self, m: FrameMetrics) -> Optional[Classification]:
        t = self.thresholds
        if m.overexposed_ratio >= t.overexposed_ratio or m.brightness > t.max_brightness:
            return Classification(SurfaceType.OVEREXPOSED, t.exposure_confidence, ReasonCode.OVEREXPOSED)
        return None

    def _rule_underexposed(self, m: FrameMetrics) -> Optional[Classification]:
        t = self.thresholds
        if m.underexposed_ratio >= t.underexposed_ratio or m.brightness < t.min_brightness:
            return Classification(SurfaceType.UNDEREXPOSED, t.exposure_confidence, ReasonCode.UNDEREXPOSED)
        return None

    def _rule_orientation(self, m: FrameMetrics) -> Optional[Classification]:
        t = self.thresholds
        if m.orientation_gradient >= t.floor_gradient_threshold:
            return Classification(
                SurfaceType.FLOOR,
                t.floor_confidence,
                ReasonCode.FLOOR_DETECTED,
                is_plane=t.allow_floor_placement,
            )
        if m.orientation_gradient <= -t.ceiling_gradient_threshold:
            return Classification(SurfaceType.CEILING, t.ceiling_confidence, ReasonCode.CEILING_DETECTED)
        return None

    def _rule_busy(self, m: FrameMetrics) -> Optional[Classification]:
        t = self.thresholds
        if m.edge_density > t.busy_edge_density or m.weak_edge_density > t.busy_weak_edge_density:
            return Classification(SurfaceType.BUSY, t.busy_confidence, ReasonCode.TOO_BUSY)
        return None

    def _rule_plane(self, m: FrameMetrics) -> Optional[Classification]:
        t = self.thresholds
        if not (
            m.uniformity >= t.min_uniformity
            and m.cross_cell_uniformity >= t.min_cross_cell_uniformity
            and m.texture_smoothness >= t.min_texture_smoothness
            and m.saturation <= t.max_saturation
            and t.min_brightness <= m.brightness <= t.max_brightness
            and abs(m.orientation_gradient) < t.floor_gradient_threshold
        ):
            return None

        surface = SurfaceType.WALL
        if t.allow_floor_placement and m.orientation_gradient >= t.floor_lean_threshold:
            surface = SurfaceType.FLOOR

        return Classification(
            surface,
            self.plane_confidence(m),
            ReasonCode.PLANE_FOUND,
            is_plane=True,
        )

    def plane_confidence(self, m: FrameMetrics) -> float:
        """Weighted sum of the five normalised plane sub-scores, capped."""
        t = self.thresholds
        brightness_score = max(0.0, 1.0 - abs(m.brightness - t.brightness_target) / t.brightness_falloff)
        scores = (
            min(1.0, m.uniformity),
            min(1.0, m.cross_cell_uniformity),
            min(1.0, m.texture_smoothness),
            max(0.0, 1.0 - m.saturation),
            brightness_score,
        )
        return clamp_confidence(sum(w * s for w, s in zip(t.weights, scores)))
