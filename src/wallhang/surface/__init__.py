"""
Surface subpackage.

Decides from raw camera pixels whether the user is pointing at a plausible
flat surface:

- SurfaceAnalyzer: pixels -> FrameMetrics
- ClassificationEngine: FrameMetrics -> Classification (ordered rule table)
- TemporalStabilizer: sliding-window confirmation
- ContourPlaneDetector: quadrilateral plane candidates
"""

from .analyzer import AnalyzerConfiguration, FrameMetrics, SurfaceAnalyzer
from .classifier import (
    Classification,
    ClassificationEngine,
    ClassificationThresholds,
    ReasonCode,
    SurfaceType,
)
from .contours import ContourConfig, ContourPlaneDetector, PlaneCandidate
from .stabilizer import StabilizerConfig, TemporalStabilizer

__all__ = [
    "AnalyzerConfiguration",
    "Classification",
    "ClassificationEngine",
    "ClassificationThresholds",
    "ContourConfig",
    "ContourPlaneDetector",
    "FrameMetrics",
    "PlaneCandidate",
    "ReasonCode",
    "StabilizerConfig",
    "SurfaceAnalyzer",
    "SurfaceType",
    "TemporalStabilizer",
]
