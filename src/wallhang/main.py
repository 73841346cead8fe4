"""
Main entry point for the wallhang scanner.

Classifies still images or runs the scanning loop on a camera or video file.

Usage:
    python -m wallhang.main --image wall.jpg      # One JSON line per image
    python -m wallhang.main --camera 0            # Live scanning window
    python -m wallhang.main --video clip.mp4 --headless --max-frames 300
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional

import cv2

from .pose import CameraPose
from .session import PlacementSession, SessionPhase
from .surface import ClassificationEngine, SurfaceAnalyzer
from .ui import GuidanceOverlay
from .utils import get_config, setup_logging, validate_config
from .video import FrameSource

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="wallhang - find a flat wall and anchor an object to it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Controls (scanning window):
  SPACE  - Place at the reticle
  R      - Reset to scanning
  C      - Toggle plane candidates
  P      - Pause/Resume
  H      - Help
  Q      - Quit
        """,
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--image", "-i",
        action="append",
        metavar="PATH",
        help="Classify an image and print the result as JSON (repeatable)",
    )
    source.add_argument("--video", metavar="PATH", help="Scan a video file")
    source.add_argument("--camera", type=int, metavar="ID", help="Scan a camera (default 0)")

    parser.add_argument("--config", "-c", metavar="PATH", help="JSON configuration file")
    parser.add_argument(
        "--preset",
        choices=("default", "strict", "lenient"),
        help="Classification threshold preset",
    )
    parser.add_argument("--headless", action="store_true", help="Do not open a window")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0 = no limit)")
    parser.add_argument(
        "--verbose", "-V",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    return parser.parse_args(argv)


def classify_image(path: str, analyzer: SurfaceAnalyzer, engine: ClassificationEngine) -> Dict:
    """Classify one image file.

    Returns:
        dict: JSON-ready result; ``error`` is set when the file is unreadable
    """
    frame = cv2.imread(path, cv2.IMREAD_COLOR)
    if frame is None:
        LOGGER.error("Could not read image: %s", path)
        return {"path": path, "error": "unreadable image"}

    rgba = FrameSource.to_rgba(frame)
    height, width = rgba.shape[:2]
    metrics = analyzer.analyze(rgba, width, height)
    classification = engine.classify(metrics)

    result = {"path": path}
    result.update(classification.to_dict())
    result["metrics"] = metrics.to_dict()
    return result


def run_images(paths: List[str], config: Dict) -> int:
    analyzer = SurfaceAnalyzer(config["analysis"])
    engine = ClassificationEngine(config["classification"])

    failures = 0
    for path in paths:
        result = classify_image(path, analyzer, engine)
        if "error" in result:
            failures += 1
        print(json.dumps(result))
    return 1 if failures else 0


def run_scanner(source, config: Dict, headless: bool = False, max_frames: int = 0) -> int:
    """Scanning loop over a camera or video file.

    The command line has no device pose, so the camera is treated as fixed
    at the session origin.
    """
    frames = FrameSource(config)
    if not frames.open(source):
        return 1
    LOGGER.info("Scanning %s: %s", source, frames.get_frame_info())

    overlay = GuidanceOverlay(config)
    if not headless and not overlay.initialize():
        frames.cleanup()
        return 1

    session = PlacementSession(config)
    camera_pose = CameraPose.identity()
    last_reason = None

    try:
        while True:
            if max_frames and session.frame_index >= max_frames:
                LOGGER.info("Reached %d frames", max_frames)
                break

            if overlay.paused:
                frame = None
            else:
                frame = frames.capture_frame()
                if frame is None:
                    LOGGER.info("End of stream")
                    break

            if frame is not None:
                rgba = FrameSource.to_rgba(frame)
                height, width = rgba.shape[:2]
                update = session.process_frame(rgba, width, height, camera_pose)

                classification = update.classification
                if classification is not None and classification.reason is not last_reason:
                    last_reason = classification.reason
                    LOGGER.info(
                        "Frame %d: %s (%.2f)",
                        update.frame_index,
                        classification.message,
                        classification.confidence,
                    )

                if not headless:
                    overlay.draw(frame, classification, update.reticle, candidates=update.candidates)
                    overlay.display_frame(frame)

            if headless:
                continue

            action = overlay.handle_events()
            if action == 'quit':
                break
            if action == 'place' and session.phase is SessionPhase.SCANNING:
                anchor = session.place(camera_pose)
                if anchor is not None:
                    LOGGER.info("Anchored at %s", anchor.world_position.round(3).tolist())
            elif action == 'reset':
                session.reset()
                last_reason = None
    finally:
        frames.cleanup()
        overlay.cleanup()

    return 0


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    args = parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level)

    config = get_config(args.config)
    if args.preset:
        config["classification"]["preset"] = args.preset
    if not validate_config(config):
        sys.exit(2)

    try:
        if args.image:
            code = run_images(args.image, config)
        else:
            source = args.video if args.video else (args.camera if args.camera is not None else config.get("camera_id", 0))
            code = run_scanner(source, config, headless=args.headless, max_frames=args.max_frames)
    except ValueError as e:
        LOGGER.error("Invalid configuration: %s", e)
        sys.exit(2)

    sys.exit(code)


if __name__ == "__main__":
    main()
