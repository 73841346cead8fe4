"""
Multi-touch gesture handling for the anchored object.

An explicit finite-state machine (IDLE / DRAG / PINCH) turns raw pointer
events into pose edits. Every gesture snapshots the anchor at its start and
computes each move from that snapshot and the original pointer positions,
so many small moves land exactly where one large move would.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from .anchor import Anchor, WorldAnchor
from .geometry import quat_from_axis_angle, quat_multiply
from .pose import CameraPose

LOGGER = logging.getLogger(__name__)


class PointerPhase(Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"
    CANCEL = "cancel"


class GestureMode(Enum):
    IDLE = "idle"
    DRAG = "drag"
    PINCH = "pinch"


@dataclass(frozen=True)
class PointerEvent:
    """Raw touch/mouse event in screen pixels (y grows downward)."""

    pointer_id: int
    x: float
    y: float
    phase: PointerPhase


@dataclass
class GestureConfig:
    """Gesture sensitivity constants."""

    drag_sensitivity_x: float = 0.01  # meters per pixel
    drag_sensitivity_y: float = 0.01
    min_pinch_distance: float = 10.0  # pixels; closer pointers do not scale or twist
    enable_pinch_rotation: bool = True

    def __post_init__(self):
        if self.min_pinch_distance <= 0:
            raise ValueError("min_pinch_distance must be positive")


@dataclass(frozen=True)
class PoseUpdate:
    """Partial pose edit produced by one move event."""

    position: Optional[np.ndarray] = None
    rotation: Optional[np.ndarray] = None
    scale: Optional[float] = None


@dataclass
class GestureState:
    """Snapshot taken when a gesture starts."""

    mode: GestureMode
    origin_pointers: List[Tuple[int, float, float]] = field(default_factory=list)
    base_pose: Optional[Anchor] = None
    camera_right: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0]))
    camera_up: np.ndarray = field(default_factory=lambda: np.array([0.0, 1.0, 0.0]))
    view_axis: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, -1.0]))
    initial_distance: float = 0.0
    initial_angle: float = 0.0


def _pointer_geometry(a: Tuple[float, float], b: Tuple[float, float]) -> Tuple[float, float]:
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    return math.hypot(dx, dy), math.atan2(dy, dx)


class GestureController:
    """
    Finite-state machine: IDLE -> DRAG (one pointer) / PINCH (two pointers).

    Malformed sequences (move/up for a pointer that never went down) are
    ignored and force the machine back to IDLE.
    """

    def __init__(self, anchor: WorldAnchor, config: Optional[Union[GestureConfig, Dict]] = None):
        if isinstance(config, GestureConfig):
            self.config = config
        else:
            cfg = dict(config or {})
            self.config = GestureConfig(**{
                k: v for k, v in cfg.items()
                if k in GestureConfig.__dataclass_fields__
            })
        self.anchor = anchor
        self.state = GestureState(GestureMode.IDLE)
        self._pointers: Dict[int, Tuple[float, float]] = {}
        self.invalid_events = 0

    @property
    def mode(self) -> GestureMode:
        return self.state.mode

    @property
    def active_pointers(self) -> int:
        return len(self._pointers)

    def reset(self):
        """Drop any gesture in progress without committing it."""
        self._pointers.clear()
        self.state = GestureState(GestureMode.IDLE)

    # ------------------------------------------------------------------ #
    # Event handling
    # ------------------------------------------------------------------ #
    def handle(self, event: PointerEvent, camera_pose: Optional[CameraPose] = None) -> Optional[PoseUpdate]:
        """Process one pointer event.

        Args:
            event: Pointer event
            camera_pose: Current camera pose; its axes orient drags and
                pinch rotation. World axes are used when unavailable.

        Returns:
            The pose update applied to the anchor, or None
        """
        if event.phase is PointerPhase.DOWN:
            self._on_down(event, camera_pose)
            return None
        if event.phase is PointerPhase.MOVE:
            return self._on_move(event)
        self._on_up(event, camera_pose)
        return None

    def _on_down(self, event: PointerEvent, camera_pose: Optional[CameraPose]):
        if not self.anchor.is_placed:
            LOGGER.debug("Pointer down ignored: no anchor")
            return
        if event.pointer_id in self._pointers:
            self._invalid(f"duplicate down for pointer {event.pointer_id}")
            return
        if len(self._pointers) >= 2:
            LOGGER.debug("Ignoring extra pointer %d", event.pointer_id)
            return

        self._pointers[event.pointer_id] = (event.x, event.y)
        if len(self._pointers) == 1:
            self._begin(GestureMode.DRAG, camera_pose)
        else:
            self._begin(GestureMode.PINCH, camera_pose)

    def _on_move(self, event: PointerEvent) -> Optional[PoseUpdate]:
        if event.pointer_id not in self._pointers:
            self._invalid(f"move for unknown pointer {event.pointer_id}")
            return None

        self._pointers[event.pointer_id] = (event.x, event.y)
        if self.state.mode is GestureMode.DRAG:
            update = self._drag_update()
        elif self.state.mode is GestureMode.PINCH:
            update = self._pinch_update()
        else:
            return None

        if update is not None:
            self.anchor.update(position=update.position, rotation=update.rotation, scale=update.scale)
        return update

    def _on_up(self, event: PointerEvent, camera_pose: Optional[CameraPose]):
        if event.pointer_id not in self._pointers:
            self._invalid(f"{event.phase.value} for unknown pointer {event.pointer_id}")
            return

        del self._pointers[event.pointer_id]
        if not self._pointers:
            self._end()
        elif self.state.mode is GestureMode.PINCH:
            # Continue as a drag from where the remaining finger is now.
            self.anchor.commit()
            self._begin(GestureMode.DRAG, camera_pose)

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #
    def _begin(self, mode: GestureMode, camera_pose: Optional[CameraPose]):
        base = self.anchor.snapshot()
        if base is None:
            self.reset()
            return

        state = GestureState(
            mode=mode,
            origin_pointers=[(pid, x, y) for pid, (x, y) in self._pointers.items()],
            base_pose=base,
        )
        if camera_pose is not None:
            state.camera_right = camera_pose.right
            state.camera_up = camera_pose.up
            state.view_axis = camera_pose.forward

        if mode is GestureMode.PINCH:
            (_, x0, y0), (_, x1, y1) = state.origin_pointers[:2]
            state.initial_distance, state.initial_angle = _pointer_geometry((x0, y0), (x1, y1))

        self.state = state
        LOGGER.debug("Gesture %s started with %d pointer(s)", mode.value, len(self._pointers))

    def _end(self):
        if self.state.mode is not GestureMode.IDLE:
            self.anchor.commit()
            LOGGER.debug("Gesture %s ended", self.state.mode.value)
        self.state = GestureState(GestureMode.IDLE)

    def _invalid(self, reason: str):
        self.invalid_events += 1
        LOGGER.debug("Invalid gesture (%s); returning to idle", reason)
        if self.state.mode is not GestureMode.IDLE:
            self.anchor.commit()
        self.reset()

    # ------------------------------------------------------------------ #
    # Pose computation
    # ------------------------------------------------------------------ #
    def _drag_update(self) -> Optional[PoseUpdate]:
        state = self.state
        pid, x0, y0 = state.origin_pointers[0]
        if pid not in self._pointers:
            return None
        x, y = self._pointers[pid]
        dx = x - x0
        dy = y - y0

        # Screen y grows downward, so dragging up moves the object up.
        position = (
            state.base_pose.world_position
            + state.camera_right * self.config.drag_sensitivity_x * dx
            + state.camera_up * (-self.config.drag_sensitivity_y) * dy
        )
        return PoseUpdate(position=position)

    def _pinch_update(self) -> Optional[PoseUpdate]:
        state = self.state
        ids = [pid for pid, _, _ in state.origin_pointers[:2]]
        if any(pid not in self._pointers for pid in ids):
            return None

        distance, angle = _pointer_geometry(self._pointers[ids[0]], self._pointers[ids[1]])
        min_distance = self.config.min_pinch_distance
        if state.initial_distance < min_distance:
            # Pointers that went down too close together are measured from the
            # minimum separation, at the angle where they first reach it.
            if distance < min_distance:
                return None
            state.initial_distance = min_distance
            state.initial_angle = angle
            LOGGER.debug("Pinch baseline set at %.1f px", min_distance)

        scale = self.anchor.clamp_scale(state.base_pose.scale * (distance / state.initial_distance))

        rotation = None
        if self.config.enable_pinch_rotation:
            twist = quat_from_axis_angle(state.view_axis, angle - state.initial_angle)
            rotation = quat_multiply(state.base_pose.world_rotation, twist)

        return PoseUpdate(rotation=rotation, scale=scale)
