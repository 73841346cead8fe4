"""
Approximate hit testing without depth sensing.

The camera's viewing ray is intersected with a small fixed set of virtual
reference planes (walls at a few canonical depths, a floor and a ceiling)
expressed in the world frame of the session. The nearest intersection inside
the configured distance bounds is used as the placement point.

This is an explicit approximation: it always produces *a* plausible point in
front of the camera, not a measured point on a real surface. When a platform
hit-test provider is supplied, every query is delegated to it instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .geometry import normalize
from .pose import CameraPose

LOGGER = logging.getLogger(__name__)


@dataclass
class HitTestConfig:
    """Configuration for the reference-plane hit tester."""

    min_distance: float = 0.3  # meters
    max_distance: float = 6.0  # meters
    wall_depths: Tuple[float, ...] = (1.5, 3.0, 4.5)
    floor_height: float = 1.5  # Floor distance below the session origin
    ceiling_height: float = 1.2  # Ceiling distance above the session origin
    include_floor: bool = True
    include_ceiling: bool = True
    fallback_distance: float = 2.0
    surface_offset: float = 0.01  # Lift placements off the surface
    fov_y_degrees: float = 60.0
    aspect: float = 4.0 / 3.0

    def __post_init__(self):
        self.wall_depths = tuple(float(d) for d in self.wall_depths)
        if self.min_distance <= 0 or self.min_distance >= self.max_distance:
            raise ValueError("Require 0 < min_distance < max_distance")
        if not self.min_distance <= self.fallback_distance <= self.max_distance:
            raise ValueError("fallback_distance must lie within [min_distance, max_distance]")
        if not 0.0 < self.fov_y_degrees < 180.0:
            raise ValueError("fov_y_degrees must be in (0, 180)")
        if self.aspect <= 0:
            raise ValueError("aspect must be positive")


@dataclass(frozen=True)
class ReferencePlane:
    """Infinite virtual plane in world coordinates."""

    name: str
    point: Tuple[float, float, float]
    normal: Tuple[float, float, float]


@dataclass(frozen=True)
class HitResult:
    """Candidate placement point."""

    point: np.ndarray
    normal: np.ndarray
    distance: float
    plane: str = ""
    is_fallback: bool = False


@dataclass(frozen=True)
class Reticle:
    """What the renderer needs to draw the placement reticle."""

    point: np.ndarray
    normal: np.ndarray
    is_good: bool


def build_reference_planes(config: HitTestConfig) -> List[ReferencePlane]:
    planes: List[ReferencePlane] = []
    for d in config.wall_depths:
        planes.extend([
            ReferencePlane(f"front@{d:g}", (0.0, 0.0, -d), (0.0, 0.0, 1.0)),
            ReferencePlane(f"back@{d:g}", (0.0, 0.0, d), (0.0, 0.0, -1.0)),
            ReferencePlane(f"left@{d:g}", (-d, 0.0, 0.0), (1.0, 0.0, 0.0)),
            ReferencePlane(f"right@{d:g}", (d, 0.0, 0.0), (-1.0, 0.0, 0.0)),
        ])
    if config.include_floor:
        planes.append(ReferencePlane("floor", (0.0, -config.floor_height, 0.0), (0.0, 1.0, 0.0)))
    if config.include_ceiling:
        planes.append(ReferencePlane("ceiling", (0.0, config.ceiling_height, 0.0), (0.0, -1.0, 0.0)))
    return planes


class RayPlaneHitTester:
    """
    Finds a placement point along the camera's viewing ray.

    Exactly one strategy is used for the lifetime of the tester: the
    reference planes, or the external provider when one is given. The two
    are never mixed.

    A provider is any object with a ``hit_test(camera_pose, screen_point)``
    method returning a HitResult or None.
    """

    def __init__(self, config: Optional[Union[HitTestConfig, Dict]] = None, provider=None):
        if isinstance(config, HitTestConfig):
            self.config = config
        else:
            cfg = dict(config or {})
            self.config = HitTestConfig(**{
                k: v for k, v in cfg.items()
                if k in HitTestConfig.__dataclass_fields__
            })
        self.provider = provider
        self.planes = build_reference_planes(self.config)
        self._tan_half_fov = float(np.tan(np.radians(self.config.fov_y_degrees) / 2.0))

        LOGGER.info(
            "RayPlaneHitTester initialized: %s, distance bounds [%.2f, %.2f] m",
            "delegating to provider" if provider is not None else f"{len(self.planes)} reference planes",
            self.config.min_distance,
            self.config.max_distance,
        )

    @property
    def uses_provider(self) -> bool:
        return self.provider is not None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def ray_direction(self, camera_pose: CameraPose, screen_point: Sequence[float] = (0.0, 0.0)) -> np.ndarray:
        """World-space unit ray through a normalised screen point (x right, y up, [-1, 1])."""
        sx, sy = float(screen_point[0]), float(screen_point[1])
        local = np.array([
            sx * self._tan_half_fov * self.config.aspect,
            sy * self._tan_half_fov,
            -1.0,
        ])
        return normalize(camera_pose.rotation_matrix @ local)

    def hit_test(
        self,
        camera_pose: Optional[CameraPose],
        screen_point: Sequence[float] = (0.0, 0.0),
    ) -> Optional[HitResult]:
        """Return the placement candidate for the ray through ``screen_point``.

        Returns None when the camera pose is not available yet, or when the
        provider has no hit inside the distance bounds.
        """
        if camera_pose is None:
            return None

        if self.provider is not None:
            return self._delegate(camera_pose, screen_point)

        origin = camera_pose.position
        direction = self.ray_direction(camera_pose, screen_point)

        best: Optional[HitResult] = None
        for plane in self.planes:
            hit = self._intersect(plane, origin, direction)
            if hit is not None and (best is None or hit.distance < best.distance):
                best = hit

        if best is not None:
            return best

        distance = self.config.fallback_distance
        return HitResult(
            point=origin + direction * distance,
            normal=-direction,
            distance=distance,
            plane="fallback",
            is_fallback=True,
        )

    def reticle(
        self,
        camera_pose: Optional[CameraPose],
        screen_point: Sequence[float] = (0.0, 0.0),
    ) -> Optional[Reticle]:
        hit = self.hit_test(camera_pose, screen_point)
        if hit is None:
            return None
        return Reticle(point=self.placement_point(hit), normal=hit.normal, is_good=not hit.is_fallback)

    def placement_point(self, hit: HitResult) -> np.ndarray:
        """Hit point lifted slightly off the surface along its normal."""
        return np.asarray(hit.point, dtype=np.float64) + np.asarray(hit.normal) * self.config.surface_offset

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _intersect(self, plane: ReferencePlane, origin: np.ndarray, direction: np.ndarray) -> Optional[HitResult]:
        normal = np.asarray(plane.normal, dtype=np.float64)
        denom = float(np.dot(normal, direction))
        if abs(denom) < 1e-9:
            return None

        t = float(np.dot(normal, np.asarray(plane.point) - origin)) / denom
        if t < self.config.min_distance or t > self.config.max_distance:
            return None

        facing = normal if denom < 0 else -normal
        return HitResult(point=origin + direction * t, normal=facing, distance=t, plane=plane.name)

    def _delegate(self, camera_pose: CameraPose, screen_point: Sequence[float]) -> Optional[HitResult]:
        try:
            hit = self.provider.hit_test(camera_pose, screen_point)
        except Exception as exc:
            LOGGER.warning("Hit-test provider failed, treating as not ready: %s", exc)
            return None

        if hit is None:
            return None
        if not self.config.min_distance <= hit.distance <= self.config.max_distance:
            LOGGER.debug("Provider hit at %.2f m outside bounds", hit.distance)
            return None
        return hit
