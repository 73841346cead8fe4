"""
wallhang - find a flat wall with a camera and hang a virtual object on it.

This package provides functionality for:
- Surface analysis and rule-based classification of camera frames
- Temporal confirmation of plane detections
- Approximate ray/reference-plane hit testing
- World anchoring with gesture editing and undo/redo
- A frame-driven placement session tying the pieces together
"""

from .anchor import Anchor, AnchorConfig, RenderPose, TransformHistory, WorldAnchor
from .gestures import GestureConfig, GestureController, GestureMode, PointerEvent, PointerPhase, PoseUpdate
from .hit_test import HitResult, HitTestConfig, RayPlaneHitTester, Reticle
from .loader import DependencyHandle, LoadState
from .pose import CameraPose, CameraPoseFilter, PoseFilterConfig
from .session import AnalysisTicket, FrameUpdate, PlacementSession, PoseSourceKind, SessionPhase
from .surface import (
    AnalyzerConfiguration,
    Classification,
    ClassificationEngine,
    ClassificationThresholds,
    ContourPlaneDetector,
    FrameMetrics,
    PlaneCandidate,
    ReasonCode,
    StabilizerConfig,
    SurfaceAnalyzer,
    SurfaceType,
    TemporalStabilizer,
)
from .ui import GuidanceOverlay
from .video import FrameSource

__version__ = "0.1.0"

__all__ = [
    # Surface
    "AnalyzerConfiguration",
    "Classification",
    "ClassificationEngine",
    "ClassificationThresholds",
    "ContourPlaneDetector",
    "FrameMetrics",
    "PlaneCandidate",
    "ReasonCode",
    "StabilizerConfig",
    "SurfaceAnalyzer",
    "SurfaceType",
    "TemporalStabilizer",
    # Hit testing
    "HitResult",
    "HitTestConfig",
    "RayPlaneHitTester",
    "Reticle",
    # Anchor & gestures
    "Anchor",
    "AnchorConfig",
    "RenderPose",
    "TransformHistory",
    "WorldAnchor",
    "GestureConfig",
    "GestureController",
    "GestureMode",
    "PointerEvent",
    "PointerPhase",
    "PoseUpdate",
    # Pose
    "CameraPose",
    "CameraPoseFilter",
    "PoseFilterConfig",
    # Session
    "AnalysisTicket",
    "DependencyHandle",
    "FrameUpdate",
    "LoadState",
    "PlacementSession",
    "PoseSourceKind",
    "SessionPhase",
    # Video & UI
    "FrameSource",
    "GuidanceOverlay",
]
