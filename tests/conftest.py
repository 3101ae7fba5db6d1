"""Test configuration and shared fakes for pytest."""

import threading
import time
from typing import List, Optional, Sequence, Union

import numpy as np
import pytest

from dentool.config import Config, ToolConfig
from dentool.detect.classifier import Classifier, ModelRef
from dentool.errors import AcquisitionError, ModelLoadError
from dentool.io.frame_source import FrameSource
from dentool.io.sink import PresentationSink
from dentool.logic.decision import ClassificationCandidate


class FakeFrameSource(FrameSource):
    """Frame source returning blank frames."""

    def __init__(self, width: int = 224, height: int = 224, fail_reads: bool = False):
        super().__init__(width, height)
        self.fail_reads = fail_reads
        self.reads = 0
        self.closed = False

    def current_frame(self) -> np.ndarray:
        if self.closed:
            raise AcquisitionError("closed")
        if self.fail_reads:
            raise AcquisitionError("camera unplugged")
        self.reads += 1
        return np.zeros(self.frame_shape, dtype=np.uint8)

    def close(self) -> None:
        self.closed = True


Output = Union[Sequence[ClassificationCandidate], Exception]


class FakeClassifier(Classifier):
    """
    Classifier replaying scripted outputs.

    Each call consumes the next output; the last one repeats. An exception
    output is raised instead of returned. ``gate`` blocks inference until set.
    """

    def __init__(self, outputs: Optional[List[Output]] = None, gate: Optional[threading.Event] = None):
        super().__init__(labels=[])
        self.outputs = list(outputs) if outputs else [[]]
        self.gate = gate
        self.entered = threading.Event()
        self.calls = 0
        self.closed = False

    def infer(self, frame: np.ndarray) -> List[ClassificationCandidate]:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        output = self.outputs[min(self.calls, len(self.outputs) - 1)]
        self.calls += 1
        if isinstance(output, Exception):
            raise output
        return [ClassificationCandidate(*c) for c in output]

    def close(self) -> None:
        self.closed = True


class RecordingSink(PresentationSink):
    """Sink keeping everything it receives."""

    def __init__(self):
        self.results = []
        self.messages = []
        self.frames = 0
        self.closed = False

    def frame(self, frame):
        self.frames += 1

    def emit(self, result):
        self.results.append(result)

    def status(self, message):
        self.messages.append(message)

    def close(self):
        self.closed = True


class FakeAdapters:
    """Counting classifier loader and frame source opener for a pipeline."""

    def __init__(
        self,
        classifier: Optional[FakeClassifier] = None,
        load_error: Optional[Exception] = None,
        open_error: Optional[Exception] = None,
        load_delay: float = 0.0,
        fail_reads: bool = False
    ):
        self.classifier = classifier or FakeClassifier()
        self.load_error = load_error
        self.open_error = open_error
        self.load_delay = load_delay
        self.fail_reads = fail_reads

        self.calls: List[str] = []
        self.frame_sources: List[FakeFrameSource] = []

    def load(self, model_ref: ModelRef) -> FakeClassifier:
        self.calls.append("load")
        if self.load_delay:
            time.sleep(self.load_delay)
        if self.load_error is not None:
            raise self.load_error
        return self.classifier

    def open(self, constraints) -> FakeFrameSource:
        self.calls.append("open")
        if self.open_error is not None:
            raise self.open_error
        frame_source = FakeFrameSource(constraints.width, constraints.height, fail_reads=self.fail_reads)
        self.frame_sources.append(frame_source)
        return frame_source


def make_config(threshold: float = 0.60, tick_interval_s: float = 0.01) -> Config:
    """Configuration with the quadrant marker tool table."""
    config = Config(
        tools={
            "red_1": ToolConfig(display_name="Red 1", region="Red 1 right", diagram="diagrams/red_1.png"),
            "blue_1": ToolConfig(display_name="Blue 1", region="Blue 1 right"),
            "Nothing": ToolConfig(display_name="Nothing here"),
        }
    )
    config.pipeline.confidence_threshold = threshold
    config.pipeline.tick_interval_s = tick_interval_s
    return config


@pytest.fixture
def config():
    """Provide a test configuration with threshold 0.60."""
    return make_config()


@pytest.fixture
def sink():
    """Provide a recording sink."""
    return RecordingSink()


@pytest.fixture
def sample_frame():
    """Provide a sample 224x224 frame."""
    return np.random.randint(0, 255, (224, 224, 3), dtype=np.uint8)


@pytest.fixture
def model_load_error():
    return ModelLoadError("model/model.pt not found")
