"""
Camera pose container and temporal filtering.

Camera poses arrive from external collaborators (device motion sensors or a
platform pose service). This module wraps them in a small value type and
provides an optional filter that smooths sensor jitter and rejects
implausible jumps before the pose reaches the world anchor.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Sequence, Union

import cv2
import numpy as np

from .geometry import (
    Rt_to_T,
    inv_T,
    quat_angle_between,
    quat_from_matrix,
    quat_normalize,
    quat_to_matrix,
)

LOGGER = logging.getLogger(__name__)


class CameraPose:
    """Camera-to-world rigid transform.

    The camera looks along its local -Z axis; +X is screen right and +Y is
    screen up.
    """

    __slots__ = ("_matrix", "timestamp")

    def __init__(self, matrix: Optional[np.ndarray] = None, timestamp: Optional[float] = None):
        if matrix is None:
            matrix = np.eye(4)
        matrix = np.array(matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"Camera pose must be a 4x4 matrix, got {matrix.shape}")
        self._matrix = matrix
        self.timestamp = timestamp

    # ------------------------------------------------------------------ #
    # Construction helpers
    # ------------------------------------------------------------------ #
    @classmethod
    def identity(cls) -> CameraPose:
        return cls(np.eye(4))

    @classmethod
    def from_rt(cls, rotation_matrix: np.ndarray, position: Sequence[float], timestamp: Optional[float] = None) -> CameraPose:
        return cls(Rt_to_T(np.asarray(rotation_matrix, dtype=np.float64), np.asarray(position)), timestamp)

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray, timestamp: Optional[float] = None) -> CameraPose:
        """Build from an OpenCV rotation vector and camera position."""
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
        return cls.from_rt(R, np.asarray(tvec, dtype=np.float64).reshape(3), timestamp)

    @classmethod
    def from_position_quaternion(
        cls,
        position: Sequence[float],
        quaternion: Sequence[float],
        timestamp: Optional[float] = None,
    ) -> CameraPose:
        return cls.from_rt(quat_to_matrix(quaternion), position, timestamp)

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #
    @property
    def matrix(self) -> np.ndarray:
        return self._matrix.copy()

    @property
    def position(self) -> np.ndarray:
        return self._matrix[:3, 3].copy()

    @property
    def rotation_matrix(self) -> np.ndarray:
        return self._matrix[:3, :3].copy()

    @property
    def quaternion(self) -> np.ndarray:
        return quat_from_matrix(self._matrix[:3, :3])

    @property
    def right(self) -> np.ndarray:
        return self._matrix[:3, 0].copy()

    @property
    def up(self) -> np.ndarray:
        return self._matrix[:3, 1].copy()

    @property
    def forward(self) -> np.ndarray:
        return -self._matrix[:3, 2]

    def inverse(self) -> np.ndarray:
        return inv_T(self._matrix)

    def compose(self, other: Union[CameraPose, np.ndarray]) -> np.ndarray:
        """Return ``self · other`` as a 4x4 matrix."""
        other_matrix = other.matrix if isinstance(other, CameraPose) else np.asarray(other, dtype=np.float64)
        return self._matrix @ other_matrix

    def copy(self) -> CameraPose:
        return CameraPose(self._matrix.copy(), self.timestamp)

    def __repr__(self) -> str:
        x, y, z = self._matrix[:3, 3]
        return f"CameraPose(position=({x:.3f}, {y:.3f}, {z:.3f}))"


@dataclass
class PoseFilterConfig:
    """Configuration for camera pose filtering and smoothing."""

    enable_smoothing: bool = False
    smoothing_alpha: float = 0.3  # EMA factor (0 = max smooth, 1 = no smooth)
    enable_outlier_rejection: bool = False
    max_translation_jump: float = 0.5  # meters per frame
    max_rotation_jump: float = 0.5  # radians per frame
    history_size: int = 10

    def __post_init__(self):
        if not 0.0 < self.smoothing_alpha <= 1.0:
            raise ValueError("smoothing_alpha must be in (0, 1]")
        if self.history_size < 1:
            raise ValueError("history_size must be positive")


class CameraPoseFilter:
    """
    Temporal filter for noisy sensor poses.

    Implements exponential moving average smoothing (position EMA, normalised
    quaternion blend) and rejection of single-frame jumps. This reduces
    jitter only; it does not correct accumulated drift.
    """

    def __init__(self, config: Optional[Union[PoseFilterConfig, Dict]] = None):
        if isinstance(config, PoseFilterConfig):
            self.config = config
        else:
            cfg = dict(config or {})
            self.config = PoseFilterConfig(**{
                k: v for k, v in cfg.items()
                if k in PoseFilterConfig.__dataclass_fields__
            })
        self.pose_history: Deque[CameraPose] = deque(maxlen=self.config.history_size)
        self.smoothed_pose: Optional[CameraPose] = None
        self.rejected_count = 0

    def reset(self):
        """Reset filter state."""
        self.pose_history.clear()
        self.smoothed_pose = None
        self.rejected_count = 0

    def filter(self, pose: Optional[CameraPose]) -> Optional[CameraPose]:
        """Apply filtering to a camera pose.

        Args:
            pose: Raw camera pose, or None when the source is not ready

        Returns:
            Filtered pose, the last good pose for rejected outliers, or None
            when no pose was supplied
        """
        if pose is None:
            return None

        if self.config.enable_outlier_rejection and self.smoothed_pose is not None:
            if self._is_outlier(pose):
                self.rejected_count += 1
                LOGGER.debug("Camera pose rejected as outlier (%d so far)", self.rejected_count)
                return self.smoothed_pose.copy()

        self.pose_history.append(pose)

        if not self.config.enable_smoothing or self.smoothed_pose is None:
            self.smoothed_pose = pose.copy()
            return self.smoothed_pose.copy()

        self.smoothed_pose = self._apply_ema_filter(pose)
        return self.smoothed_pose.copy()

    def _is_outlier(self, pose: CameraPose) -> bool:
        t_diff = np.linalg.norm(pose.position - self.smoothed_pose.position)
        if t_diff > self.config.max_translation_jump:
            LOGGER.debug("Translation jump: %.3f > %.3f", t_diff, self.config.max_translation_jump)
            return True

        r_diff = quat_angle_between(pose.quaternion, self.smoothed_pose.quaternion)
        if r_diff > self.config.max_rotation_jump:
            LOGGER.debug("Rotation jump: %.3f > %.3f", r_diff, self.config.max_rotation_jump)
            return True

        return False

    def _apply_ema_filter(self, pose: CameraPose) -> CameraPose:
        alpha = self.config.smoothing_alpha
        prev = self.smoothed_pose

        position = alpha * pose.position + (1 - alpha) * prev.position

        q_new = pose.quaternion
        q_prev = prev.quaternion
        if np.dot(q_new, q_prev) < 0:
            q_new = -q_new
        rotation = quat_normalize(alpha * q_new + (1 - alpha) * q_prev)

        return CameraPose.from_position_quaternion(position, rotation, pose.timestamp)
