"""
Integration tests for the wallhang pipeline.

Drives the full scan -> confirm -> place -> edit -> render loop on synthetic
frames, and the command line on images and an offline video file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List

import cv2
import numpy as np
import pytest

from wallhang.gestures import PointerEvent, PointerPhase
from wallhang.main import classify_image, main, run_scanner
from wallhang.pose import CameraPose
from wallhang.session import PlacementSession, SessionPhase
from wallhang.surface import ClassificationEngine, ReasonCode, SurfaceAnalyzer, SurfaceType
from wallhang.ui import GREEN, RED, GuidanceOverlay, status_color
from wallhang.utils import get_config
from wallhang.video import FrameSource

LOGGER = logging.getLogger(__name__)


@dataclass
class ScanMetrics:
    """Metrics collected while scanning a sequence."""

    total_frames: int = 0
    analyzed_frames: int = 0
    plane_frames: int = 0
    first_confirmed_frame: int = 0
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "total_frames": self.total_frames,
            "analyzed_frames": self.analyzed_frames,
            "plane_frames": self.plane_frames,
            "first_confirmed_frame": self.first_confirmed_frame,
        }


class SyntheticSceneGenerator:
    """Generate synthetic BGR frames of simple scenes."""

    @staticmethod
    def painted_wall(num_frames: int = 30, width: int = 320, height: int = 240, seed: int = 0) -> List[np.ndarray]:
        """Evenly lit off-white wall with slight sensor noise."""
        rng = np.random.default_rng(seed)
        frames = []
        for _ in range(num_frames):
            noise = rng.normal(0.0, 2.0, size=(height, width, 3))
            frame = np.clip(np.full((height, width, 3), (140.0, 145.0, 150.0)) + noise, 0, 255)
            frames.append(frame.astype(np.uint8))
        return frames

    @staticmethod
    def bookshelf(num_frames: int = 30, width: int = 320, height: int = 240) -> List[np.ndarray]:
        """High-contrast clutter."""
        frames = []
        for i in range(num_frames):
            frame = np.full((height, width, 3), 120, dtype=np.uint8)
            for x in range(0, width, 6):
                shade = 30 if (x // 6 + i) % 2 else 220
                cv2.rectangle(frame, (x, 0), (x + 2, height), (shade, shade, shade), -1)
            frames.append(frame)
        return frames

    @staticmethod
    def save_as_video(frames: List[np.ndarray], output_path: str, fps: int = 30) -> bool:
        if not frames:
            return False
        h, w = frames[0].shape[:2]
        writer = cv2.VideoWriter(output_path, cv2.VideoWriter_fourcc(*"MJPG"), fps, (w, h))
        if not writer.isOpened():
            return False
        for frame in frames:
            writer.write(frame)
        writer.release()
        return True


def scan(session: PlacementSession, frames: List[np.ndarray], pose: CameraPose) -> ScanMetrics:
    metrics = ScanMetrics()
    for frame in frames:
        rgba = FrameSource.to_rgba(frame)
        update = session.process_frame(rgba, rgba.shape[1], rgba.shape[0], pose)
        metrics.total_frames += 1
        if update.analyzed:
            metrics.analyzed_frames += 1
            metrics.reasons.append(update.classification.reason.value)
            if update.classification.is_plane:
                metrics.plane_frames += 1
        if update.classification is not None and update.classification.stable and not metrics.first_confirmed_frame:
            metrics.first_confirmed_frame = update.frame_index
    return metrics


# ============================================================================
# Test Cases
# ============================================================================

class TestScanning:
    """Classification and confirmation over sequences."""

    def test_wall_sequence_confirms(self):
        session = PlacementSession(get_config())
        metrics = scan(session, SyntheticSceneGenerator.painted_wall(20), CameraPose.identity())

        assert metrics.analyzed_frames == 10
        assert metrics.plane_frames == 10
        # Eighth analysed frame at interval two
        assert metrics.first_confirmed_frame == 15
        LOGGER.info("Wall scan: %s", metrics.to_dict())

    def test_clutter_never_confirms(self):
        session = PlacementSession(get_config())
        metrics = scan(session, SyntheticSceneGenerator.bookshelf(20), CameraPose.identity())

        assert metrics.plane_frames == 0
        assert metrics.first_confirmed_frame == 0
        assert set(metrics.reasons) == {ReasonCode.TOO_BUSY.value}

    def test_confirmation_survives_brief_glitch(self):
        session = PlacementSession(get_config())
        wall = SyntheticSceneGenerator.painted_wall(20)
        glitch = SyntheticSceneGenerator.bookshelf(4)
        scan(session, wall, CameraPose.identity())
        scan(session, glitch, CameraPose.identity())

        # Two busy analyses leave ten of the last twelve positive
        assert session.stabilizer.confirmed


class TestPlacementFlow:
    """Scan, place, edit and render."""

    def test_full_flow(self):
        session = PlacementSession(get_config())
        pose = CameraPose.identity()
        scan(session, SyntheticSceneGenerator.painted_wall(16), pose)
        assert session.stabilizer.confirmed

        anchor = session.place(pose, require_stable=True)
        assert anchor is not None
        assert session.phase is SessionPhase.PLACED

        for event in (
            PointerEvent(1, 200, 200, PointerPhase.DOWN),
            PointerEvent(1, 250, 200, PointerPhase.MOVE),
            PointerEvent(1, 250, 200, PointerPhase.UP),
        ):
            session.handle_pointer(event, pose)
        world = session.anchor.anchor.world_position.copy()
        assert np.allclose(world, [0.5, 0.0, -1.49])

        # Walking sideways leaves the object fixed in the world
        for step in range(1, 6):
            walked = CameraPose.from_rt(np.eye(3), [0.1 * step, 0.0, 0.0])
            render = session.render_pose(walked)
            assert np.allclose(render.position, world - [0.1 * step, 0.0, 0.0])

        session.reset()
        assert session.render_pose(pose) is None
        assert len(session.stabilizer) == 0


class TestOverlay:
    """Guidance drawing without a window."""

    def test_draw_modifies_frame(self):
        overlay = GuidanceOverlay(get_config())
        session = PlacementSession(get_config())
        frame = SyntheticSceneGenerator.painted_wall(1)[0]
        rgba = FrameSource.to_rgba(frame)
        update = session.process_frame(rgba, rgba.shape[1], rgba.shape[0], CameraPose.identity())

        before = frame.copy()
        drawn = overlay.draw(frame, update.classification, update.reticle)
        assert drawn is frame
        assert not np.array_equal(before, frame)
        assert overlay.draw(None, update.classification) is None

    def test_status_colours(self):
        engine = ClassificationEngine()
        analyzer = SurfaceAnalyzer()
        bright = np.full((120, 160, 4), 252, dtype=np.uint8)
        result = engine.classify(analyzer.analyze(bright, 160, 120))

        assert result.surface_type is SurfaceType.OVEREXPOSED
        assert status_color(result) == RED
        assert status_color(result.with_stability(True)) == GREEN


class TestCommandLine:
    """Image and video entry points."""

    def test_classify_image(self, tmp_path):
        path = str(tmp_path / "wall.png")
        cv2.imwrite(path, SyntheticSceneGenerator.painted_wall(1)[0])

        result = classify_image(path, SurfaceAnalyzer(), ClassificationEngine())
        assert result["surface_type"] == "wall"
        assert result["is_plane"] is True
        assert result["metrics"]["ready"] is True

    def test_main_prints_json_per_image(self, tmp_path, capsys):
        wall = str(tmp_path / "wall.png")
        shelf = str(tmp_path / "shelf.png")
        cv2.imwrite(wall, SyntheticSceneGenerator.painted_wall(1)[0])
        cv2.imwrite(shelf, SyntheticSceneGenerator.bookshelf(1)[0])

        with pytest.raises(SystemExit) as exit_info:
            main(["--image", wall, "--image", shelf])
        assert exit_info.value.code == 0

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.startswith("{")]
        assert [line["surface_type"] for line in lines] == ["wall", "busy"]

    def test_main_reports_unreadable_image(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exit_info:
            main(["--image", str(tmp_path / "missing.png")])
        assert exit_info.value.code == 1
        assert "unreadable image" in capsys.readouterr().out

    def test_main_rejects_invalid_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"stabilizer": {"history_size": 4, "confirm_count": 6}}))
        with pytest.raises(SystemExit) as exit_info:
            main(["--config", str(path), "--image", "unused.png"])
        assert exit_info.value.code == 2

    def test_headless_video_scan(self, tmp_path):
        path = str(tmp_path / "wall.avi")
        if not SyntheticSceneGenerator.save_as_video(SyntheticSceneGenerator.painted_wall(12), path):
            pytest.skip("No MJPG encoder available")

        assert run_scanner(path, get_config(), headless=True, max_frames=8) == 0

    def test_frame_source_missing_file(self, tmp_path):
        source = FrameSource()
        assert not source.open(os.path.join(str(tmp_path), "missing.avi"))
        assert source.read() is None

    def test_frame_source_reads_video(self, tmp_path):
        path = str(tmp_path / "wall.avi")
        if not SyntheticSceneGenerator.save_as_video(SyntheticSceneGenerator.painted_wall(5), path):
            pytest.skip("No MJPG encoder available")

        source = FrameSource()
        assert source.open(path)
        frames = [source.read() for _ in range(3)]
        info = source.get_frame_info()
        source.cleanup()

        assert all(frame is not None and frame.shape == (240, 320, 4) for frame in frames)
        assert (info["width"], info["height"], info["frames_read"]) == (320, 240, 3)
        assert source.get_frame_info() == {}
