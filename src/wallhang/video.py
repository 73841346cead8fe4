"""
Video input for the scanning loop.

Opens a camera or a video file and hands frames to the pipeline both as the
BGR image OpenCV displays and as the RGBA buffer the surface analyzer reads.
"""

import logging
import platform
from typing import List, Optional, Union

import cv2
import numpy as np


class FrameSource:
    """Camera or video file frames for surface analysis."""

    def __init__(self, config=None):
        """Initialize frame source.

        Args:
            config: Configuration dictionary
        """
        self.config = config or {}
        self.cap: Optional[cv2.VideoCapture] = None
        self.logger = logging.getLogger(__name__)

        self.camera_id = self.config.get('camera_id', 0)
        self.width = self.config.get('video_width', 640)
        self.height = self.config.get('video_height', 480)
        self.fps = self.config.get('video_fps', 30)

        self.backend_priority = self._resolve_backend_priority(
            self.config.get('camera_backend_priority')
        )
        self.selected_backend: Optional[int] = None
        self.frames_read = 0

    @staticmethod
    def _resolve_backend_priority(user_priority: Optional[List[int]]) -> List[int]:
        """Backend order for the current platform unless configured."""
        if user_priority:
            return user_priority

        system = platform.system()
        names = {
            'Darwin': ('CAP_AVFOUNDATION',),
            'Windows': ('CAP_DSHOW', 'CAP_MSMF'),
        }.get(system, ('CAP_V4L2',))

        backends = [getattr(cv2, name) for name in names if hasattr(cv2, name)]
        backends.append(cv2.CAP_ANY)
        return backends

    def open(self, source: Union[int, str, None] = None) -> bool:
        """Open a camera index or a video file path.

        Returns:
            bool: True if the source delivers frames, False otherwise
        """
        self.cleanup()
        if source is None:
            source = self.camera_id

        if isinstance(source, str):
            cap = cv2.VideoCapture(source)
            if not cap.isOpened():
                self.logger.error("Failed to open video file: %s", source)
                cap.release()
                return False
            self.cap = cap
            self.logger.info("Video file opened: %s", source)
            return True

        for backend in self.backend_priority:
            cap = cv2.VideoCapture(source, backend)
            if not cap.isOpened():
                self.logger.warning("Failed to open camera %s with backend %s", source, backend)
                cap.release()
                continue

            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            cap.set(cv2.CAP_PROP_FPS, self.fps)

            self.cap = cap
            self.selected_backend = backend
            self.logger.info(
                "Camera %s opened: %sx%s",
                source,
                int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
                int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            )
            return True

        self.logger.error("Unable to open camera %s with backends %s", source, self.backend_priority)
        return False

    @property
    def is_open(self) -> bool:
        return self.cap is not None and self.cap.isOpened()

    def capture_frame(self) -> Optional[np.ndarray]:
        """Capture a BGR frame, or None when no frame is available."""
        if not self.is_open:
            return None

        ret, frame = self.cap.read()
        if not ret or frame is None or frame.size == 0:
            self.logger.debug("No frame available")
            return None
        self.frames_read += 1
        return frame

    @staticmethod
    def to_rgba(frame: Optional[np.ndarray]) -> Optional[np.ndarray]:
        """Convert a BGR (or grayscale) frame to the RGBA analysis layout."""
        if frame is None:
            return None
        if frame.ndim == 2:
            return cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
        if frame.shape[2] == 4:
            return cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)

    def read(self) -> Optional[np.ndarray]:
        """Next frame as an (H, W, 4) RGBA array, or None when not ready."""
        return self.to_rgba(self.capture_frame())

    def get_frame_info(self):
        """Get information about the current video stream.

        Returns:
            dict: Frame information
        """
        if self.cap is None:
            return {}

        return {
            'width': int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            'height': int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            'fps': int(self.cap.get(cv2.CAP_PROP_FPS)),
            'frames_read': self.frames_read,
        }

    def cleanup(self):
        """Release video resources."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            self.logger.info("Frame source released")
