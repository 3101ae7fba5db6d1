"""Test suite for overlay rendering."""

import cv2
import numpy as np
import pytest

from dentool.errors import SinkError
from dentool.logic.decision import DetectionOutcome, DetectionResult, ToolProfile
from dentool.viz.overlay import OverlayRenderer, OverlaySink, create_overlay_sink


@pytest.fixture
def diagram_dir(tmp_path):
    image = np.full((120, 200, 3), 255, dtype=np.uint8)
    cv2.imwrite(str(tmp_path / "scaler.png"), image)
    return tmp_path


def scaler_result():
    profile = ToolProfile("Scaler", "Scaler", "Gingival margin", "scaler.png")
    return DetectionResult("Scaler", 0.88, True, profile, DetectionOutcome.TOOL, 1.0)


class TestOverlayRenderer:
    """Test cases for OverlayRenderer class."""

    def setup_method(self):
        self.renderer = OverlayRenderer(display_size=448, panel_width=360)

    def test_canvas_shape(self, sample_frame):
        canvas = self.renderer.render(scaler_result(), sample_frame, "Camera running")

        assert canvas.shape == (448, 448 + 360, 3)
        assert canvas.dtype == np.uint8

    def test_renders_without_frame(self):
        canvas = self.renderer.render(DetectionResult.degraded(timestamp=1.0))
        assert canvas.shape == (448, 808, 3)

    @pytest.mark.parametrize("outcome", list(DetectionOutcome))
    def test_all_outcomes(self, outcome, sample_frame):
        result = DetectionResult("x", 0.5, outcome in (DetectionOutcome.TOOL, DetectionOutcome.NOTHING),
                                 None, outcome, 1.0)
        canvas = self.renderer.render(result, sample_frame)
        assert canvas.any()

    def test_diagram_drawn(self, diagram_dir):
        renderer = OverlayRenderer(diagram_root=diagram_dir)
        with_diagram = renderer.render(scaler_result())

        renderer_off = OverlayRenderer(diagram_root=diagram_dir, show_diagram=False)
        without_diagram = renderer_off.render(scaler_result())

        assert with_diagram[:, 448:].sum() > without_diagram[:, 448:].sum()

    def test_missing_diagram_is_skipped(self, tmp_path):
        renderer = OverlayRenderer(diagram_root=tmp_path)
        canvas = renderer.render(scaler_result())

        assert canvas.shape == (448, 808, 3)
        assert renderer._diagrams["scaler.png"] is None


class TestOverlaySink:
    """Test cases for OverlaySink class."""

    def test_emit_without_display(self, sample_frame):
        sink = create_overlay_sink(display=False)

        sink.status("Camera running")
        sink.frame(sample_frame)
        sink.emit(scaler_result())

        assert sink.last_canvas is not None
        assert not sink.close_requested

    def test_render_error_becomes_sink_error(self):
        class BrokenRenderer(OverlayRenderer):
            def render(self, result, frame=None, status=""):
                raise cv2.error("bad canvas")

        sink = OverlaySink(BrokenRenderer(), display=False)

        with pytest.raises(SinkError):
            sink.emit(scaler_result())
