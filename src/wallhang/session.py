"""
Placement session: the per-frame pass tying the core together.

    pixels -> SurfaceAnalyzer -> ClassificationEngine -> TemporalStabilizer -> UI
    camera pose -> RayPlaneHitTester -> reticle / placement point
    placement -> WorldAnchor <- GestureController
    camera pose -> WorldAnchor.get_render_pose -> renderer

The session runs single-threaded and frame-driven. Frame analysis may be
dispatched as a deferred task; its result is only applied while the
scanning phase that requested it is still current.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .anchor import Anchor, RenderPose, WorldAnchor
from .geometry import quat_facing
from .gestures import GestureController, PointerEvent, PoseUpdate
from .hit_test import RayPlaneHitTester, Reticle
from .loader import DependencyHandle
from .pose import CameraPose, CameraPoseFilter
from .surface import (
    Classification,
    ClassificationEngine,
    ContourPlaneDetector,
    FrameMetrics,
    PlaneCandidate,
    SurfaceAnalyzer,
    TemporalStabilizer,
)

LOGGER = logging.getLogger(__name__)


class SessionPhase(Enum):
    SCANNING = "scanning"
    PLACED = "placed"


class PoseSourceKind(Enum):
    SENSOR = "sensor"  # best-effort device pose + reference-plane hit testing
    PLATFORM = "platform"  # platform pose/hit-test provider


@dataclass
class SessionConfig:
    """Per-frame pass configuration."""

    analysis_interval: int = 2  # Analyse every Kth frame
    detect_candidates: bool = False
    require_stable_placement: bool = False

    def __post_init__(self):
        if self.analysis_interval < 1:
            raise ValueError("analysis_interval must be >= 1")


@dataclass(frozen=True)
class AnalysisTicket:
    """Identifies the scanning phase a deferred analysis belongs to."""

    generation: int
    frame_index: int


@dataclass
class FrameUpdate:
    """Everything the UI and renderer need after one frame."""

    frame_index: int
    phase: SessionPhase
    analyzed: bool = False
    classification: Optional[Classification] = None
    reticle: Optional[Reticle] = None
    render_pose: Optional[RenderPose] = None
    candidates: List[PlaneCandidate] = field(default_factory=list)


class PlacementSession:
    """
    Owns one scanning/placement session.

    The pose source is chosen once, at construction: PLATFORM when a ready
    provider (or a READY DependencyHandle) is supplied, SENSOR otherwise.
    It is never switched mid-session.
    """

    def __init__(self, config: Optional[Dict] = None, provider: Any = None):
        self.config = config or {}
        session_cfg = dict(self.config.get("session", {}))
        self.session_config = SessionConfig(**{
            k: v for k, v in session_cfg.items()
            if k in SessionConfig.__dataclass_fields__
        })

        resolved_provider = self._resolve_provider(provider)
        self.pose_source = PoseSourceKind.PLATFORM if resolved_provider is not None else PoseSourceKind.SENSOR

        self.analyzer = SurfaceAnalyzer(self.config.get("analysis", {}))
        self.engine = ClassificationEngine(self.config.get("classification", {}))
        self.stabilizer = TemporalStabilizer(self.config.get("stabilizer", {}))
        self.contour_detector = ContourPlaneDetector(self.config.get("contours", {}))
        self.hit_tester = RayPlaneHitTester(self.config.get("hit_test", {}), provider=resolved_provider)
        self.anchor = WorldAnchor(self.config.get("anchor", {}))
        self.gestures = GestureController(self.anchor, self.config.get("gestures", {}))
        self.pose_filter = CameraPoseFilter(self.config.get("pose_filter", {}))

        self.phase = SessionPhase.SCANNING
        self.frame_index = 0
        self.latest_pose: Optional[CameraPose] = None
        self.latest_classification: Optional[Classification] = None
        self._generation = 0

        LOGGER.info(
            "Placement session started: pose source=%s, analysis every %d frame(s)",
            self.pose_source.value,
            self.session_config.analysis_interval,
        )

    @staticmethod
    def _resolve_provider(provider: Any) -> Any:
        if isinstance(provider, DependencyHandle):
            if provider.is_ready:
                return provider.get()
            LOGGER.info("Provider '%s' is %s; using sensor pose source", provider.name, provider.state.value)
            return None
        return provider

    @property
    def generation(self) -> int:
        return self._generation

    # ------------------------------------------------------------------ #
    # Per-frame pass
    # ------------------------------------------------------------------ #
    def process_frame(
        self,
        pixels,
        width: int,
        height: int,
        camera_pose: Optional[CameraPose] = None,
    ) -> FrameUpdate:
        """Run one frame's classification or render pass."""
        self.frame_index += 1
        pose = self.pose_filter.filter(camera_pose)
        if pose is not None:
            self.latest_pose = pose

        update = FrameUpdate(frame_index=self.frame_index, phase=self.phase)

        if self.phase is SessionPhase.SCANNING:
            if (self.frame_index - 1) % self.session_config.analysis_interval == 0:
                ticket = self.begin_analysis()
                metrics = self.analyzer.analyze(pixels, width, height)
                update.classification = self.complete_analysis(ticket, metrics)
                update.analyzed = True
                if self.session_config.detect_candidates and isinstance(pixels, np.ndarray) and pixels.ndim == 3:
                    update.candidates = self.contour_detector.detect(pixels)
            else:
                update.classification = self.latest_classification
            update.reticle = self.hit_tester.reticle(pose)
        else:
            update.render_pose = self.anchor.get_render_pose(pose)

        return update

    def begin_analysis(self) -> AnalysisTicket:
        """Start a (possibly deferred) analysis for the current phase."""
        return AnalysisTicket(generation=self._generation, frame_index=self.frame_index)

    def complete_analysis(self, ticket: AnalysisTicket, metrics: FrameMetrics) -> Optional[Classification]:
        """Apply an analysis result; stale results are discarded (None)."""
        if ticket.generation != self._generation or self.phase is not SessionPhase.SCANNING:
            LOGGER.debug(
                "Discarding analysis from frame %d (generation %d, now %d)",
                ticket.frame_index,
                ticket.generation,
                self._generation,
            )
            return None

        classification = self.engine.classify(metrics)
        self.latest_classification = self.stabilizer.push(classification)
        return self.latest_classification

    # ------------------------------------------------------------------ #
    # Placement, gestures, rendering
    # ------------------------------------------------------------------ #
    def place(
        self,
        camera_pose: Optional[CameraPose] = None,
        screen_point: Sequence[float] = (0.0, 0.0),
        require_stable: Optional[bool] = None,
    ) -> Optional[Anchor]:
        """Place the object where the ray through ``screen_point`` lands.

        Returns the new anchor, or None when the pose/hit is not available
        or a confirmed surface is required and missing.
        """
        pose = camera_pose if camera_pose is not None else self.latest_pose
        if pose is None:
            LOGGER.debug("Cannot place: camera pose not ready")
            return None

        if require_stable is None:
            require_stable = self.session_config.require_stable_placement
        if require_stable and not self.stabilizer.confirmed:
            LOGGER.debug("Cannot place: surface not confirmed")
            return None

        hit = self.hit_tester.hit_test(pose, screen_point)
        if hit is None:
            LOGGER.debug("Cannot place: no hit")
            return None

        self.gestures.reset()
        anchor = self.anchor.place(pose, self.hit_tester.placement_point(hit), quat_facing(hit.normal))
        self.phase = SessionPhase.PLACED
        self._generation += 1
        LOGGER.info("Placed on '%s' at %.2f m", hit.plane, hit.distance)
        return anchor

    def handle_pointer(self, event: PointerEvent, camera_pose: Optional[CameraPose] = None) -> Optional[PoseUpdate]:
        if self.phase is not SessionPhase.PLACED:
            return None
        pose = camera_pose if camera_pose is not None else self.latest_pose
        return self.gestures.handle(event, pose)

    def render_pose(self, camera_pose: Optional[CameraPose] = None) -> Optional[RenderPose]:
        pose = camera_pose if camera_pose is not None else self.latest_pose
        return self.anchor.get_render_pose(pose)

    def reset(self):
        """Return to scanning: clear history, anchor and gestures."""
        self.stabilizer.reset()
        self.anchor.reset()
        self.gestures.reset()
        self.pose_filter.reset()
        self.latest_classification = None
        self.phase = SessionPhase.SCANNING
        self._generation += 1
        LOGGER.info("Session reset")
