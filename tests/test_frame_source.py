"""Test suite for frame source adapters."""

import cv2
import numpy as np
import pytest

from dentool.config import CameraConfig
from dentool.errors import AcquisitionError
from dentool.io.frame_source import CameraFrameSource, FrameSource, open_frame_source, request_torch

from conftest import FakeFrameSource


@pytest.fixture
def video_file(tmp_path):
    """Write a short MJPG clip."""
    path = tmp_path / "clip.avi"
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*'MJPG'), 10.0, (64, 48))
    for i in range(3):
        writer.write(np.full((48, 64, 3), i * 40, dtype=np.uint8))
    writer.release()
    return path


class TestCameraFrameSource:
    """Test cases for CameraFrameSource class."""

    def test_missing_source(self, tmp_path):
        with pytest.raises(AcquisitionError):
            CameraFrameSource(str(tmp_path / "missing.mp4"))

    def test_frames_are_resized(self, video_file):
        with CameraFrameSource(video_file, width=224, height=224) as source:
            frame = source.current_frame()

            assert frame.shape == (224, 224, 3)
            assert source.frame_count == 1

    def test_end_of_stream(self, video_file):
        source = CameraFrameSource(video_file)
        for _ in range(3):
            source.current_frame()

        with pytest.raises(AcquisitionError):
            source.current_frame()

        source.close()

    def test_read_after_close(self, video_file):
        source = CameraFrameSource(video_file)
        source.close()

        with pytest.raises(AcquisitionError):
            source.current_frame()

    def test_open_frame_source(self, video_file):
        constraints = CameraConfig(source=str(video_file), width=112, height=96)

        source = open_frame_source(constraints)

        assert source.current_frame().shape == (96, 112, 3)
        assert not source.torch_enabled
        source.close()

    def test_facing_mode_does_not_change_source(self, video_file):
        constraints = CameraConfig(source=str(video_file), facing_mode="user", torch=False)

        with open_frame_source(constraints) as source:
            assert source.source == str(video_file)
            assert source.current_frame().shape == (224, 224, 3)

    def test_open_frame_source_unavailable(self, tmp_path):
        with pytest.raises(AcquisitionError):
            open_frame_source(CameraConfig(source=str(tmp_path / "missing.mp4")))


class TestRequestTorch:
    """Test cases for the best-effort torch request."""

    def test_torch_supported(self):
        class TorchSource(FakeFrameSource):
            def enable_torch(self):
                return True

        source = TorchSource()

        assert request_torch(source)
        assert source.torch_enabled

    def test_torch_unsupported(self):
        source = FakeFrameSource()

        assert not request_torch(source)
        assert not source.torch_enabled

    def test_torch_failure_is_swallowed(self):
        class BrokenTorch(FakeFrameSource):
            def enable_torch(self):
                raise OSError("constraint rejected")

        source = BrokenTorch()

        assert not request_torch(source)
        assert not source.closed


class TestFrameSourceBase:
    """Test cases for FrameSource base class."""

    def test_context_manager_closes(self):
        with FakeFrameSource() as source:
            assert source.current_frame().shape == (224, 224, 3)

        assert source.closed

    def test_base_is_abstract(self):
        with pytest.raises(NotImplementedError):
            FrameSource().current_frame()
