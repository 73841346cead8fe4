"""
Tests for reference-plane hit testing.
"""

import unittest

import numpy as np

from wallhang.geometry import quat_from_axis_angle
from wallhang.hit_test import HitResult, HitTestConfig, RayPlaneHitTester
from wallhang.pose import CameraPose


def pitched(angle_degrees, position=(0.0, 0.0, 0.0)):
    q = quat_from_axis_angle([1.0, 0.0, 0.0], np.radians(angle_degrees))
    return CameraPose.from_position_quaternion(position, q)


class FakeProvider:
    """Stands in for a platform hit-test service."""

    def __init__(self, distance=1.0, fail=False):
        self.distance = distance
        self.fail = fail
        self.calls = 0

    def hit_test(self, camera_pose, screen_point):
        self.calls += 1
        if self.fail:
            raise RuntimeError("tracking lost")
        return HitResult(
            point=np.array([0.0, 0.0, -self.distance]),
            normal=np.array([0.0, 0.0, 1.0]),
            distance=self.distance,
            plane="provider",
        )


class TestRayPlaneHitTester(unittest.TestCase):

    def setUp(self):
        self.tester = RayPlaneHitTester()

    def test_forward_hits_nearest_wall(self):
        hit = self.tester.hit_test(CameraPose.identity())

        self.assertIsNotNone(hit)
        self.assertFalse(hit.is_fallback)
        self.assertAlmostEqual(hit.distance, 1.5)
        np.testing.assert_allclose(hit.point, [0.0, 0.0, -1.5], atol=1e-9)
        np.testing.assert_allclose(hit.normal, [0.0, 0.0, 1.0], atol=1e-9)

    def test_normal_faces_camera(self):
        for angle in (0.0, 30.0, -30.0, 90.0, -90.0):
            pose = pitched(angle)
            hit = self.tester.hit_test(pose)
            direction = self.tester.ray_direction(pose)
            self.assertLess(np.dot(hit.normal, direction), 0.0, angle)

    def test_looking_up_hits_ceiling(self):
        hit = self.tester.hit_test(pitched(90.0))
        self.assertEqual(hit.plane, "ceiling")
        self.assertAlmostEqual(hit.distance, 1.2)

    def test_looking_down_hits_floor(self):
        hit = self.tester.hit_test(pitched(-90.0))
        self.assertEqual(hit.plane, "floor")
        self.assertAlmostEqual(hit.distance, 1.5)

    def test_min_distance_skips_close_planes(self):
        hit = self.tester.hit_test(CameraPose.from_rt(np.eye(3), [0.0, 0.0, -1.4]))
        self.assertAlmostEqual(hit.distance, 1.6)

    def test_fallback_when_nothing_in_bounds(self):
        pose = CameraPose.from_rt(np.eye(3), [0.0, 0.0, 100.0])
        hit = self.tester.hit_test(pose)

        self.assertTrue(hit.is_fallback)
        self.assertAlmostEqual(hit.distance, 2.0)
        np.testing.assert_allclose(hit.point, [0.0, 0.0, 98.0], atol=1e-9)
        np.testing.assert_allclose(hit.normal, [0.0, 0.0, 1.0], atol=1e-9)
        self.assertFalse(self.tester.reticle(pose).is_good)

    def test_distance_always_in_bounds(self):
        rng = np.random.default_rng(3)
        config = self.tester.config
        for _ in range(100):
            q = rng.normal(size=4)
            position = rng.uniform(-3.0, 3.0, size=3)
            pose = CameraPose.from_position_quaternion(position, q)
            screen = rng.uniform(-1.0, 1.0, size=2)
            hit = self.tester.hit_test(pose, screen)
            self.assertGreaterEqual(hit.distance, config.min_distance)
            self.assertLessEqual(hit.distance, config.max_distance)

    def test_screen_point_steers_ray(self):
        centre = self.tester.ray_direction(CameraPose.identity())
        right = self.tester.ray_direction(CameraPose.identity(), (1.0, 0.0))
        up = self.tester.ray_direction(CameraPose.identity(), (0.0, 1.0))

        np.testing.assert_allclose(centre, [0.0, 0.0, -1.0])
        self.assertGreater(right[0], 0.0)
        self.assertGreater(up[1], 0.0)
        self.assertAlmostEqual(np.linalg.norm(right), 1.0)

    def test_no_pose_is_not_ready(self):
        self.assertIsNone(self.tester.hit_test(None))
        self.assertIsNone(self.tester.reticle(None))

    def test_placement_point_offset(self):
        hit = self.tester.hit_test(CameraPose.identity())
        np.testing.assert_allclose(self.tester.placement_point(hit), [0.0, 0.0, -1.49], atol=1e-9)

    def test_reticle_good_on_plane(self):
        reticle = self.tester.reticle(CameraPose.identity())
        self.assertTrue(reticle.is_good)

    def test_provider_delegation(self):
        provider = FakeProvider(distance=2.5)
        tester = RayPlaneHitTester(provider=provider)

        hit = tester.hit_test(CameraPose.identity())
        self.assertTrue(tester.uses_provider)
        self.assertEqual(hit.plane, "provider")
        self.assertEqual(provider.calls, 1)

    def test_provider_out_of_bounds_or_failing(self):
        self.assertIsNone(RayPlaneHitTester(provider=FakeProvider(distance=10.0)).hit_test(CameraPose.identity()))
        self.assertIsNone(RayPlaneHitTester(provider=FakeProvider(fail=True)).hit_test(CameraPose.identity()))

    def test_invalid_config(self):
        with self.assertRaises(ValueError):
            HitTestConfig(min_distance=2.0, max_distance=1.0)
        with self.assertRaises(ValueError):
            HitTestConfig(fallback_distance=10.0)

    def test_config_from_dict(self):
        tester = RayPlaneHitTester({"wall_depths": [2.0], "include_floor": False})
        self.assertEqual(tester.config.wall_depths, (2.0,))
        self.assertEqual(len(tester.planes), 5)


if __name__ == "__main__":
    unittest.main()
