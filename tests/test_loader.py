"""
Tests for lazily loaded dependencies.
"""

import threading
import unittest

from wallhang.loader import DependencyHandle, LoadState


class TestDependencyHandle(unittest.TestCase):

    def test_successful_load(self):
        handle = DependencyHandle(lambda: {"service": True}, name="pose service")
        self.assertEqual(handle.state, LoadState.UNINITIALIZED)
        self.assertIsNone(handle.get())

        self.assertEqual(handle.load(), LoadState.READY)
        self.assertTrue(handle.is_ready)
        self.assertEqual(handle.get(), {"service": True})
        self.assertIsNone(handle.error)

    def test_failed_load_is_captured(self):
        def factory():
            raise RuntimeError("no platform support")

        handle = DependencyHandle(factory)
        self.assertEqual(handle.load(), LoadState.FAILED)
        self.assertFalse(handle.is_ready)
        self.assertIsNone(handle.get())
        self.assertIsInstance(handle.error, RuntimeError)

    def test_factory_runs_once(self):
        calls = []
        handle = DependencyHandle(lambda: calls.append(1) or object())
        handle.load()
        handle.load()
        self.assertEqual(len(calls), 1)

    def test_concurrent_callers_wait(self):
        release = threading.Event()
        calls = []

        def factory():
            calls.append(1)
            release.wait(5)
            return "instance"

        handle = DependencyHandle(factory)
        results = []
        threads = [threading.Thread(target=lambda: results.append(handle.load(timeout=5))) for _ in range(4)]
        for thread in threads:
            thread.start()
        release.set()
        for thread in threads:
            thread.join(5)

        self.assertEqual(len(calls), 1)
        self.assertEqual(results, [LoadState.READY] * 4)

    def test_reset_allows_retry(self):
        attempts = []

        def factory():
            attempts.append(1)
            if len(attempts) == 1:
                raise OSError("busy")
            return "ok"

        handle = DependencyHandle(factory)
        self.assertEqual(handle.load(), LoadState.FAILED)
        handle.reset()
        self.assertEqual(handle.state, LoadState.UNINITIALIZED)
        self.assertEqual(handle.load(), LoadState.READY)
        self.assertEqual(handle.get(), "ok")


if __name__ == "__main__":
    unittest.main()
