"""Frame source adapters wrapping camera acquisition."""

from pathlib import Path
from typing import Optional, Union
import cv2
import numpy as np
from loguru import logger

from ..config import CameraConfig
from ..errors import AcquisitionError


class FrameSource:
    """
    Base class for frame sources.

    A frame source delivers fixed-size BGR frames on demand and owns the
    underlying device until ``close()`` is called.
    """

    def __init__(self, width: int = 224, height: int = 224):
        self.width = width
        self.height = height
        self.torch_enabled = False

    @property
    def frame_shape(self):
        return (self.height, self.width, 3)

    def current_frame(self) -> np.ndarray:
        """Return the latest frame resized to (height, width, 3)."""
        raise NotImplementedError

    def enable_torch(self) -> bool:
        """
        Switch on the supplementary illumination.

        Returns:
            True if the torch is on, False if the device has none
        """
        return False

    def close(self) -> None:
        """Release the device."""

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class CameraFrameSource(FrameSource):
    """
    OpenCV-backed frame source.

    Supports:
    - USB / built-in cameras (by index)
    - RTSP / HTTP streams
    - Video files (MP4, AVI, etc.)
    """

    def __init__(
        self,
        source: Union[str, int, Path],
        width: int = 224,
        height: int = 224,
        buffer_size: int = 1
    ):
        """
        Open the capture device.

        Args:
            source: Camera index, stream URL or video file path
            width: Output frame width
            height: Output frame height
            buffer_size: OpenCV buffer size for live streams

        Raises:
            AcquisitionError: If the device cannot be opened
        """
        super().__init__(width, height)
        self.source = source
        self.buffer_size = buffer_size
        self.frame_count = 0
        self.cap: Optional[cv2.VideoCapture] = None

        self._initialize_capture()

    def _initialize_capture(self) -> None:
        """Initialize video capture."""
        source = str(self.source) if isinstance(self.source, Path) else self.source
        try:
            self.cap = cv2.VideoCapture(source)
        except cv2.error as e:
            raise AcquisitionError(f"Error opening video source {self.source}: {e}") from e

        if not self.cap.isOpened():
            self.cap.release()
            self.cap = None
            raise AcquisitionError(f"Failed to open video source: {self.source}")

        if self._is_live():
            self.cap.set(cv2.CAP_PROP_BUFFERSIZE, self.buffer_size)
            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        source_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        source_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

        logger.info(f"Video source opened: {self.source}")
        logger.info(f"Source properties: {source_width}x{source_height}, output {self.width}x{self.height}")

    def _is_live(self) -> bool:
        return isinstance(self.source, int) or str(self.source).startswith(('rtsp://', 'rtmp://', 'http://', 'https://'))

    def current_frame(self) -> np.ndarray:
        """
        Read the next frame from the device.

        Returns:
            Frame of shape (height, width, 3)

        Raises:
            AcquisitionError: If the device is closed or returned no frame
        """
        if self.cap is None:
            raise AcquisitionError(f"Video source is closed: {self.source}")

        ret, frame = self.cap.read()
        if not ret or frame is None:
            raise AcquisitionError(f"Frame read failed for source: {self.source}")

        if frame.shape[:2] != (self.height, self.width):
            frame = cv2.resize(frame, (self.width, self.height))

        self.frame_count += 1
        return frame

    def enable_torch(self) -> bool:
        # OpenCV exposes no portable torch control.
        return False

    def close(self) -> None:
        """Release video capture resources."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            logger.info(f"Video source released: {self.source} ({self.frame_count} frames)")


def request_torch(frame_source: FrameSource) -> bool:
    """
    Best-effort torch request; failures are logged and never raised.

    Args:
        frame_source: Opened frame source

    Returns:
        True if the torch was switched on
    """
    try:
        enabled = frame_source.enable_torch()
    except Exception as e:
        logger.warning(f"Torch activation failed: {e}")
        return False

    if enabled:
        frame_source.torch_enabled = True
        logger.info("Torch enabled")
    else:
        logger.info("Torch not supported on this device")
    return enabled


def open_frame_source(constraints: CameraConfig) -> FrameSource:
    """
    Acquire a frame source for the given constraints.

    Args:
        constraints: Camera constraints

    Returns:
        Opened frame source

    Raises:
        AcquisitionError: If the camera is unavailable
    """
    logger.debug(
        f"Acquiring camera: source={constraints.source}, facing_mode={constraints.facing_mode}, "
        f"size={constraints.width}x{constraints.height}"
    )

    frame_source = CameraFrameSource(
        constraints.source,
        width=constraints.width,
        height=constraints.height,
        buffer_size=constraints.buffer_size
    )

    if constraints.torch:
        request_torch(frame_source)

    return frame_source
