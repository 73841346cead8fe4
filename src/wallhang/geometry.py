"""
Rigid-transform and quaternion helpers.

Conventions used throughout the package:
- Transforms are 4x4 homogeneous matrices (float64).
- Camera poses are camera-to-world; the camera looks along its local -Z axis
  with +Y up and +X to the right.
- Quaternions are stored as numpy arrays in (w, x, y, z) order.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation

EPSILON = 1e-9


def Rt_to_T(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
    return T


def inv_T(T: np.ndarray) -> np.ndarray:
    """Invert a rigid transform without a general matrix inverse."""
    R = T[:3, :3]
    t = T[:3, 3]
    Ti = np.eye(4)
    Ti[:3, :3] = R.T
    Ti[:3, 3] = -R.T @ t
    return Ti


def transform_point(T: np.ndarray, p: Sequence[float]) -> np.ndarray:
    p = np.asarray(p, dtype=np.float64).reshape(3)
    return T[:3, :3] @ p + T[:3, 3]


def as_vec3(v: Sequence[float]) -> np.ndarray:
    arr = np.asarray(v, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {arr.shape}")
    return arr.copy()


def normalize(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v)
    if norm < EPSILON:
        return np.asarray(v, dtype=np.float64)
    return np.asarray(v, dtype=np.float64) / norm


# ---------------------------------------------------------------------- #
# Quaternions (w, x, y, z)
# ---------------------------------------------------------------------- #
def quat_identity() -> np.ndarray:
    return np.array([1.0, 0.0, 0.0, 0.0])


def quat_normalize(q: Sequence[float]) -> np.ndarray:
    q = np.asarray(q, dtype=np.float64).reshape(4)
    norm = np.linalg.norm(q)
    if norm < EPSILON:
        return quat_identity()
    return q / norm


def to_rotation(q: Sequence[float]) -> Rotation:
    """Wrap a (w, x, y, z) quaternion as a scipy Rotation (x, y, z, w inside)."""
    w, x, y, z = quat_normalize(q)
    return Rotation.from_quat([x, y, z, w])


def from_rotation(rotation: Rotation) -> np.ndarray:
    """Unit (w, x, y, z) quaternion with non-negative w."""
    x, y, z, w = rotation.as_quat()
    q = np.array([w, x, y, z])
    return q if q[0] >= 0 else -q


def quat_multiply(a: Sequence[float], b: Sequence[float]) -> np.ndarray:
    """Compose rotations a * b (apply b first, then a)."""
    return from_rotation(to_rotation(a) * to_rotation(b))


def quat_from_axis_angle(axis: Sequence[float], angle: float) -> np.ndarray:
    axis = np.asarray(axis, dtype=np.float64).reshape(3)
    norm = np.linalg.norm(axis)
    if norm < EPSILON or abs(angle) < EPSILON:
        return quat_identity()
    return from_rotation(Rotation.from_rotvec(axis / norm * angle))


def quat_to_matrix(q: Sequence[float]) -> np.ndarray:
    return to_rotation(q).as_matrix()


def quat_from_matrix(R: np.ndarray) -> np.ndarray:
    return from_rotation(Rotation.from_matrix(np.asarray(R, dtype=np.float64)))


def quat_angle_between(a: Sequence[float], b: Sequence[float]) -> float:
    """Smallest rotation angle (radians) taking a to b."""
    return float((to_rotation(a).inv() * to_rotation(b)).magnitude())


def quat_facing(normal: Sequence[float]) -> np.ndarray:
    """Rotation taking the object's local +Z axis onto ``normal``.

    Used to orient a flat object so its front face points out of a surface.
    """
    target = normalize(np.asarray(normal, dtype=np.float64).reshape(3))
    forward = np.array([0.0, 0.0, 1.0])
    dot = float(np.clip(np.dot(forward, target), -1.0, 1.0))
    if dot > 1.0 - 1e-12:
        return quat_identity()
    if dot < -1.0 + 1e-12:
        # Opposite direction: half turn around the up axis keeps the object upright.
        return quat_from_axis_angle([0.0, 1.0, 0.0], np.pi)
    axis = np.cross(forward, target)
    return quat_from_axis_angle(axis, float(np.arccos(dot)))
