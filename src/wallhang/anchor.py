"""
World anchoring by pose dead reckoning.

A placed object stores its pose together with the camera pose at placement
time. Each frame, the render pose is derived from the change between the
current and the reference camera pose, so the object appears fixed in the
world while the camera moves.

Limitation: no environment map is built and nothing corrects the incoming
camera pose. Sensor noise therefore accumulates as drift over long sessions
or fast motion.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from .geometry import (
    as_vec3,
    inv_T,
    quat_from_axis_angle,
    quat_identity,
    quat_multiply,
    quat_normalize,
    quat_to_matrix,
    transform_point,
)
from .pose import CameraPose

LOGGER = logging.getLogger(__name__)


@dataclass
class AnchorConfig:
    """Scale bounds and step sizes for anchor edits."""

    min_scale: float = 0.1
    max_scale: float = 5.0
    move_step: float = 0.1  # meters
    rotate_step_degrees: float = 5.0
    scale_step: float = 0.1
    history_limit: int = 50

    def __post_init__(self):
        if self.min_scale <= 0 or self.min_scale > self.max_scale:
            raise ValueError("Require 0 < min_scale <= max_scale")
        if not self.min_scale <= 1.0 <= self.max_scale:
            raise ValueError("Scale bounds must include the initial scale of 1")
        if self.history_limit < 1:
            raise ValueError("history_limit must be positive")


@dataclass
class Anchor:
    """Stored world pose of the placed object."""

    world_position: np.ndarray
    world_rotation: np.ndarray  # quaternion (w, x, y, z)
    scale: float
    reference_camera_pose: np.ndarray  # 4x4 camera-to-world at placement

    def copy(self) -> Anchor:
        return Anchor(
            world_position=self.world_position.copy(),
            world_rotation=self.world_rotation.copy(),
            scale=self.scale,
            reference_camera_pose=self.reference_camera_pose.copy(),
        )


@dataclass(frozen=True)
class RenderPose:
    """Pose handed to the renderer for one frame."""

    position: np.ndarray
    rotation: np.ndarray
    scale: float

    def as_matrix(self) -> np.ndarray:
        """Return the 4x4 model matrix (rotation, uniform scale, translation)."""
        transform = np.eye(4, dtype=np.float64)
        transform[:3, :3] = quat_to_matrix(self.rotation) * self.scale
        transform[:3, 3] = self.position
        return transform


@dataclass
class TransformHistory:
    """Bounded undo/redo stack of anchor snapshots."""

    limit: int = 50
    entries: List[Anchor] = field(default_factory=list)
    index: int = -1

    def record(self, anchor: Anchor):
        # Recording after an undo drops the redo branch.
        del self.entries[self.index + 1:]
        self.entries.append(anchor.copy())
        if len(self.entries) > self.limit:
            del self.entries[0]
        self.index = len(self.entries) - 1

    def undo(self) -> Optional[Anchor]:
        if self.index <= 0:
            return None
        self.index -= 1
        return self.entries[self.index].copy()

    def redo(self) -> Optional[Anchor]:
        if self.index >= len(self.entries) - 1:
            return None
        self.index += 1
        return self.entries[self.index].copy()

    def clear(self):
        self.entries.clear()
        self.index = -1

    @property
    def can_undo(self) -> bool:
        return self.index > 0

    @property
    def can_redo(self) -> bool:
        return self.index < len(self.entries) - 1


class WorldAnchor:
    """
    Owns the single live Anchor of a session.

    Written by placement and by gesture edits, read by the renderer. All
    mutation happens under one lock so a multi-threaded host keeps
    single-writer discipline.
    """

    def __init__(self, config: Optional[Union[AnchorConfig, Dict]] = None):
        if isinstance(config, AnchorConfig):
            self.config = config
        else:
            cfg = dict(config or {})
            self.config = AnchorConfig(**{
                k: v for k, v in cfg.items()
                if k in AnchorConfig.__dataclass_fields__
            })
        self._anchor: Optional[Anchor] = None
        self._lock = threading.RLock()
        self.history = TransformHistory(limit=self.config.history_limit)

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #
    @property
    def is_placed(self) -> bool:
        return self._anchor is not None

    @property
    def anchor(self) -> Optional[Anchor]:
        """The live anchor (do not mutate; use ``update``)."""
        return self._anchor

    def snapshot(self) -> Optional[Anchor]:
        """Deep copy of the current anchor, or None."""
        with self._lock:
            return self._anchor.copy() if self._anchor is not None else None

    def clamp_scale(self, scale: float) -> float:
        return max(self.config.min_scale, min(self.config.max_scale, float(scale)))

    # ------------------------------------------------------------------ #
    # Placement and rendering
    # ------------------------------------------------------------------ #
    def place(
        self,
        camera_pose: CameraPose,
        point: Sequence[float],
        rotation: Optional[Sequence[float]] = None,
    ) -> Anchor:
        """Create the anchor at ``point``, remembering the current camera pose."""
        with self._lock:
            if self._anchor is not None:
                LOGGER.info("Replacing existing anchor")
            self._anchor = Anchor(
                world_position=as_vec3(point),
                world_rotation=quat_normalize(rotation) if rotation is not None else quat_identity(),
                scale=1.0,
                reference_camera_pose=camera_pose.matrix,
            )
            self.history.clear()
            self.history.record(self._anchor)
            LOGGER.info("Anchor placed at (%.3f, %.3f, %.3f)", *self._anchor.world_position)
            return self._anchor.copy()

    def get_render_pose(self, current_camera_pose: Optional[CameraPose]) -> Optional[RenderPose]:
        """Pose that keeps the object world-fixed for the given camera pose.

        ``delta = current · inverse(reference)`` and the object is moved by
        ``inverse(delta)``; reversing this order makes the object drift the
        wrong way as the camera moves.

        Returns None before placement (callers skip rendering) and while the
        camera pose is unavailable.
        """
        with self._lock:
            anchor = self._anchor
            if anchor is None or current_camera_pose is None:
                return None

            delta = current_camera_pose.matrix @ inv_T(anchor.reference_camera_pose)
            position = transform_point(inv_T(delta), anchor.world_position)
            return RenderPose(
                position=position,
                rotation=anchor.world_rotation.copy(),
                scale=anchor.scale,
            )

    # ------------------------------------------------------------------ #
    # Edits
    # ------------------------------------------------------------------ #
    def update(
        self,
        position: Optional[Sequence[float]] = None,
        rotation: Optional[Sequence[float]] = None,
        scale: Optional[float] = None,
    ) -> bool:
        """Mutate the anchor in place. Returns False when nothing is placed."""
        with self._lock:
            if self._anchor is None:
                LOGGER.debug("Ignoring anchor update: nothing placed")
                return False
            if position is not None:
                self._anchor.world_position = as_vec3(position)
            if rotation is not None:
                self._anchor.world_rotation = quat_normalize(rotation)
            if scale is not None:
                self._anchor.scale = self.clamp_scale(scale)
            return True

    def commit(self):
        """Record the current pose as an undo step."""
        with self._lock:
            if self._anchor is not None:
                self.history.record(self._anchor)

    def undo(self) -> bool:
        with self._lock:
            if self._anchor is None:
                return False
            previous = self.history.undo()
            if previous is None:
                return False
            self._restore(previous)
            return True

    def redo(self) -> bool:
        with self._lock:
            if self._anchor is None:
                return False
            following = self.history.redo()
            if following is None:
                return False
            self._restore(following)
            return True

    def _restore(self, snapshot: Anchor):
        # The reference camera pose belongs to the placement, not to the edit.
        self._anchor.world_position = snapshot.world_position
        self._anchor.world_rotation = snapshot.world_rotation
        self._anchor.scale = snapshot.scale

    def nudge(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> bool:
        """Move by whole steps along the world axes."""
        with self._lock:
            if self._anchor is None:
                return False
            step = self.config.move_step
            offset = np.array([dx, dy, dz], dtype=np.float64) * step
            self.update(position=self._anchor.world_position + offset)
            self.commit()
            return True

    def rotate_step(self, direction: int = 1, axis: Sequence[float] = (0.0, 0.0, 1.0)) -> bool:
        """Rotate by one step about an object-local axis (front-face normal by default)."""
        with self._lock:
            if self._anchor is None:
                return False
            angle = np.radians(self.config.rotate_step_degrees) * direction
            rotation = quat_multiply(self._anchor.world_rotation, quat_from_axis_angle(axis, angle))
            self.update(rotation=rotation)
            self.commit()
            return True

    def scale_step(self, direction: int = 1) -> bool:
        with self._lock:
            if self._anchor is None:
                return False
            self.update(scale=self._anchor.scale + self.config.scale_step * direction)
            self.commit()
            return True

    def reset(self):
        """Destroy the anchor and its edit history."""
        with self._lock:
            self._anchor = None
            self.history.clear()
            LOGGER.info("Anchor reset")
