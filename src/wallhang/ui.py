"""
User interface module.

Draws scanning guidance (status text, confidence bar, reticle, plane
candidates) over camera frames and handles keyboard controls.
"""

import logging
from typing import Iterable, Optional, Sequence, Tuple

import cv2

from .hit_test import Reticle
from .surface import Classification, PlaneCandidate, ReasonCode

GREEN = (0, 200, 0)
AMBER = (0, 170, 255)
RED = (0, 0, 230)
WHITE = (255, 255, 255)
GREY = (160, 160, 160)

EXPOSURE_REASONS = (ReasonCode.OVEREXPOSED, ReasonCode.UNDEREXPOSED)


def status_color(classification: Optional[Classification]) -> Tuple[int, int, int]:
    """BGR colour for a classification."""
    if classification is None or classification.reason is ReasonCode.NOT_READY:
        return GREY
    if classification.stable:
        return GREEN
    if classification.reason in EXPOSURE_REASONS:
        return RED
    return AMBER


class GuidanceOverlay:
    """Scanning guidance drawn with OpenCV."""

    def __init__(self, config=None):
        """Initialize overlay.

        Args:
            config: Configuration dictionary
        """
        self.config = config or {}
        self.logger = logging.getLogger(__name__)

        self.window_name = "wallhang"
        self.display_width = self.config.get('display_width', 640)
        self.display_height = self.config.get('display_height', 480)

        self.show_candidates = self.config.get('show_candidates', True)
        self.paused = False
        self.window_open = False

    def initialize(self):
        """Create the display window.

        Returns:
            bool: True if initialization successful, False otherwise
        """
        try:
            cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(self.window_name, self.display_width, self.display_height)
        except cv2.error as e:
            self.logger.error(f"UI initialization failed: {e}")
            return False

        self.window_open = True
        self.logger.info(f"UI initialized: {self.display_width}x{self.display_height}")
        return True

    # ------------------------------------------------------------------ #
    # Drawing
    # ------------------------------------------------------------------ #
    def draw(
        self,
        frame,
        classification: Optional[Classification],
        reticle: Optional[Reticle] = None,
        reticle_px: Optional[Sequence[int]] = None,
        candidates: Iterable[PlaneCandidate] = (),
    ):
        """Draw guidance onto ``frame`` (BGR, modified in place).

        Returns:
            The same frame, for chaining
        """
        if frame is None:
            return None

        color = status_color(classification)
        if self.show_candidates:
            for candidate in candidates:
                x, y, w, h = candidate.rect
                cv2.rectangle(frame, (x, y), (x + w, y + h), GREEN if candidate.is_wall else GREY, 1)

        self._draw_status(frame, classification, color)
        self._draw_confidence_bar(frame, classification, color)
        if reticle is not None:
            self._draw_reticle(frame, reticle, reticle_px)
        return frame

    def _draw_status(self, frame, classification: Optional[Classification], color):
        font = cv2.FONT_HERSHEY_SIMPLEX
        message = classification.message if classification is not None else "Starting camera..."
        cv2.putText(frame, message, (10, 24), font, 0.6, color, 2)

        y_offset = 46
        if classification is not None:
            label = f"{classification.surface_type.value} {classification.confidence:.0%}"
            cv2.putText(frame, label, (10, y_offset), font, 0.5, WHITE, 1)
            y_offset += 20
        if self.paused:
            cv2.putText(frame, "PAUSED", (10, y_offset), font, 0.5, RED, 1)

    def _draw_confidence_bar(self, frame, classification: Optional[Classification], color):
        height, width = frame.shape[:2]
        bar_width = max(width // 3, 1)
        x0, y0 = 10, height - 20
        cv2.rectangle(frame, (x0, y0), (x0 + bar_width, y0 + 10), GREY, 1)

        confidence = classification.confidence if classification is not None else 0.0
        filled = int(bar_width * confidence)
        if filled > 0:
            cv2.rectangle(frame, (x0, y0), (x0 + filled, y0 + 10), color, -1)

    def _draw_reticle(self, frame, reticle: Reticle, reticle_px: Optional[Sequence[int]]):
        height, width = frame.shape[:2]
        if reticle_px is None:
            center = (width // 2, height // 2)
        else:
            center = (int(reticle_px[0]), int(reticle_px[1]))
        radius = max(min(width, height) // 20, 4)
        color = GREEN if reticle.is_good else WHITE
        cv2.circle(frame, center, radius, color, 2)
        cv2.circle(frame, center, 2, color, -1)

    # ------------------------------------------------------------------ #
    # Window and input
    # ------------------------------------------------------------------ #
    def display_frame(self, frame):
        if frame is None or not self.window_open:
            return
        cv2.imshow(self.window_name, frame)

    def handle_events(self):
        """Handle keyboard input.

        Returns:
            str: 'quit', 'place', 'reset' or '' when nothing to do
        """
        key = cv2.waitKey(1) & 0xFF

        if key == ord('q') or key == 27:  # 'q' or ESC to quit
            self.logger.info("User requested exit")
            return 'quit'
        if key == ord(' '):
            return 'place'
        if key == ord('r'):
            return 'reset'
        if key == ord('c'):
            self.show_candidates = not self.show_candidates
            self.logger.info(f"Candidate display: {self.show_candidates}")
        elif key == ord('p'):
            self.paused = not self.paused
            self.logger.info(f"Paused: {self.paused}")
        elif key == ord('h'):
            self._print_help()
        return ''

    def _print_help(self):
        help_text = """
        wallhang controls:
        ==================
        q / ESC - Quit
        SPACE   - Place at the reticle
        r       - Reset to scanning
        c       - Toggle plane candidates
        p       - Pause/Resume
        h       - Show this help
        """
        print(help_text)

    def cleanup(self):
        """Clean up UI resources."""
        if self.window_open:
            cv2.destroyAllWindows()
            self.window_open = False
            self.logger.info("UI cleaned up")
