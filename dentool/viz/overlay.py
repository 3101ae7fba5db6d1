"""Visualization of detection results on the camera frame."""

from pathlib import Path
from typing import Dict, Optional, Tuple, Union
import cv2
import numpy as np
import logging

from ..errors import SinkError
from ..io.sink import PresentationSink
from ..logic.decision import DetectionOutcome, DetectionResult

logger = logging.getLogger(__name__)

OUTCOME_COLORS: Dict[DetectionOutcome, Tuple[int, int, int]] = {
    DetectionOutcome.TOOL: (0, 200, 0),
    DetectionOutcome.NOTHING: (200, 200, 200),
    DetectionOutcome.LOW_CONFIDENCE: (0, 165, 255),
    DetectionOutcome.UNRECOGNIZED: (0, 165, 255),
    DetectionOutcome.DEGRADED: (0, 0, 255),
}


class OverlayRenderer:
    """Renders the frame next to a result panel."""

    def __init__(
        self,
        show_confidence: bool = True,
        show_diagram: bool = True,
        diagram_root: Optional[Union[str, Path]] = None,
        display_size: int = 448,
        panel_width: int = 360,
        font_scale: float = 0.6,
        warning_color: Tuple[int, int, int] = (0, 0, 255)
    ):
        """
        Initialize overlay renderer.

        Args:
            show_confidence: Show prediction confidence
            show_diagram: Show the mouth diagram of accepted tools
            diagram_root: Directory that relative diagram paths are resolved against
            display_size: Side length the frame is scaled to
            panel_width: Width of the result panel
            font_scale: Font scale for text
            warning_color: Color of the low-confidence warning (BGR)
        """
        self.show_confidence = show_confidence
        self.show_diagram = show_diagram
        self.diagram_root = Path(diagram_root) if diagram_root else None
        self.display_size = display_size
        self.panel_width = panel_width
        self.font_scale = font_scale
        self.warning_color = warning_color

        self.font = cv2.FONT_HERSHEY_SIMPLEX
        self._diagrams: Dict[str, Optional[np.ndarray]] = {}

        logger.info("Overlay renderer initialized")

    def render(
        self,
        result: DetectionResult,
        frame: Optional[np.ndarray] = None,
        status: str = ""
    ) -> np.ndarray:
        """
        Render a result.

        Args:
            result: Detection result
            frame: Camera frame the result was computed from
            status: Status line shown at the bottom of the panel

        Returns:
            BGR canvas of shape (display_size, display_size + panel_width, 3)
        """
        size = self.display_size
        canvas = np.zeros((size, size + self.panel_width, 3), dtype=np.uint8)

        if frame is not None:
            canvas[:, :size] = cv2.resize(frame, (size, size))

        color = OUTCOME_COLORS[result.outcome]
        cv2.rectangle(canvas, (0, 0), (size - 1, size - 1), color, 3)

        x = size + 15
        y = 35
        self._put(canvas, result.tool_name, (x, y), color, scale=1.3, thickness=2)

        y += 35
        if self.show_confidence:
            self._put(canvas, f"Confidence: {result.confidence_text}", (x, y), (255, 255, 255))
            y += 28

        self._put(canvas, f"Region: {result.region}", (x, y), (255, 255, 255))
        y += 20

        if self.show_diagram and result.outcome == DetectionOutcome.TOOL and result.profile:
            diagram = self._get_diagram(result.profile.diagram_ref)
            if diagram is not None:
                y = self._draw_diagram(canvas, diagram, (x, y))

        if result.warning:
            self._put(canvas, result.warning, (x, size - 50), self.warning_color, scale=0.8)

        if status:
            self._put(canvas, status, (x, size - 20), (180, 180, 180), scale=0.7)

        return canvas

    def _put(
        self,
        image: np.ndarray,
        text: str,
        origin: Tuple[int, int],
        color: Tuple[int, int, int],
        scale: float = 1.0,
        thickness: int = 1
    ) -> None:
        # Wrap long lines to the panel width
        max_width = self.panel_width - 30
        words = text.split()
        line = ""
        x, y = origin
        for word in words:
            candidate = f"{line} {word}".strip()
            (w, h), _ = cv2.getTextSize(candidate, self.font, self.font_scale * scale, thickness)
            if w > max_width and line:
                cv2.putText(image, line, (x, y), self.font, self.font_scale * scale, color, thickness)
                y += h + 8
                line = word
            else:
                line = candidate
        if line:
            cv2.putText(image, line, (x, y), self.font, self.font_scale * scale, color, thickness)

    def _draw_diagram(self, canvas: np.ndarray, diagram: np.ndarray, origin: Tuple[int, int]) -> int:
        """Paste a diagram thumbnail; returns the y below it."""
        x, y = origin
        max_w = self.panel_width - 30
        max_h = max(0, self.display_size - y - 70)
        if max_h <= 0:
            return y

        h, w = diagram.shape[:2]
        scale = min(max_w / w, max_h / h)
        thumb = cv2.resize(diagram, (max(1, int(w * scale)), max(1, int(h * scale))))
        th, tw = thumb.shape[:2]
        canvas[y:y + th, x:x + tw] = thumb
        return y + th

    def _get_diagram(self, diagram_ref: Optional[str]) -> Optional[np.ndarray]:
        """Load and cache a diagram image."""
        if not diagram_ref:
            return None

        if diagram_ref not in self._diagrams:
            path = Path(diagram_ref)
            if self.diagram_root and not path.is_absolute():
                path = self.diagram_root / path

            image = cv2.imread(str(path), cv2.IMREAD_COLOR)
            if image is None:
                logger.warning(f"Diagram not found: {path}")
            self._diagrams[diagram_ref] = image

        return self._diagrams[diagram_ref]


class OverlaySink(PresentationSink):
    """Presentation sink that shows rendered results in an OpenCV window."""

    def __init__(
        self,
        renderer: OverlayRenderer,
        window_name: str = "Dental Tool Recognition",
        display: bool = True
    ):
        self.renderer = renderer
        self.window_name = window_name
        self.display = display

        self.last_canvas: Optional[np.ndarray] = None
        self.close_requested = False
        self._frame: Optional[np.ndarray] = None
        self._message = ""

    def frame(self, frame: np.ndarray) -> None:
        self._frame = frame

    def status(self, message: str) -> None:
        self._message = message

    def emit(self, result: DetectionResult) -> None:
        try:
            canvas = self.renderer.render(result, self._frame, self._message)
        except cv2.error as e:
            raise SinkError(f"Overlay rendering failed: {e}") from e
        finally:
            self._frame = None

        self.last_canvas = canvas

        if self.display:
            try:
                cv2.imshow(self.window_name, canvas)
                key = cv2.waitKey(1) & 0xFF
            except cv2.error as e:
                raise SinkError(f"Overlay display failed: {e}") from e

            if key == ord('q') or key == 27:  # 'q' or ESC
                self.close_requested = True

    def close(self) -> None:
        if self.display:
            try:
                cv2.destroyWindow(self.window_name)
            except cv2.error as e:
                logger.debug(f"Overlay window already closed: {e}")


def create_overlay_sink(
    show_confidence: bool = True,
    show_diagram: bool = True,
    diagram_root: Optional[Union[str, Path]] = None,
    window_name: str = "Dental Tool Recognition",
    display: bool = True
) -> OverlaySink:
    """
    Factory function to create overlay sink.

    Returns:
        OverlaySink instance
    """
    renderer = OverlayRenderer(
        show_confidence=show_confidence,
        show_diagram=show_diagram,
        diagram_root=diagram_root
    )
    return OverlaySink(renderer, window_name=window_name, display=display)
