"""Detection pipeline: capture -> infer -> decide -> emit."""

import asyncio
import functools
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union
import logging

from .config import CameraConfig, Config
from .detect.classifier import Classifier, ModelRef, load_classifier
from .io.frame_source import FrameSource, open_frame_source
from .io.sink import LoggingSink, PresentationSink
from .logic.decision import DetectionOutcome, DetectionResult, create_confidence_policy
from .logic.fsm import PipelineState, PipelineStateMachine

logger = logging.getLogger(__name__)

ClassifierLoader = Callable[[ModelRef], Classifier]
FrameSourceOpener = Callable[[CameraConfig], FrameSource]


class DetectionPipeline:
    """
    One recognition session.

    Owns the lifecycle state, the classifier and the frame source. ``start()``
    loads the model before opening the camera; ``tick()`` runs one
    capture/infer/decide/emit cycle while RUNNING; ``stop()`` releases both
    resources and returns to IDLE.
    """

    def __init__(
        self,
        config: Config,
        sink: Optional[PresentationSink] = None,
        classifier_loader: Optional[ClassifierLoader] = None,
        frame_source_opener: Optional[FrameSourceOpener] = None
    ):
        """
        Initialize detection pipeline.

        Args:
            config: Main configuration
            sink: Presentation sink (logs results if None)
            classifier_loader: Loads a classifier for a model reference
            frame_source_opener: Opens a frame source for camera constraints
        """
        self.config = config
        self.sink = sink or LoggingSink()

        self.model_ref = ModelRef(config.model.model_path, config.model.metadata_path)
        self.constraints = config.camera

        self._classifier_loader = classifier_loader or functools.partial(
            load_classifier, device=config.model.device, imgsz=config.model.imgsz
        )
        self._frame_source_opener = frame_source_opener or open_frame_source

        self.policy = create_confidence_policy(
            profiles=config.tool_profiles(),
            confidence_threshold=config.pipeline.confidence_threshold,
            sentinel_label=config.pipeline.sentinel_label
        )
        self.fsm = PipelineStateMachine()

        # Resources, held only while RUNNING
        self.classifier: Optional[Classifier] = None
        self.frame_source: Optional[FrameSource] = None

        self._tick_lock = asyncio.Lock()
        self._session = 0

        # Statistics
        self.tick_count = 0
        self.accepted_count = 0
        self.degraded_count = 0
        self.start_time = 0.0

        logger.info("Detection pipeline initialized")

    @property
    def state(self) -> PipelineState:
        return self.fsm.state

    @property
    def is_running(self) -> bool:
        return self.fsm.is_running

    async def start(self) -> bool:
        """
        Acquire the classifier, then the frame source, and enter RUNNING.

        Repeated calls while STARTING or RUNNING are no-ops.

        Returns:
            True if this call started the session, False if it was ignored
            or the session was stopped while starting

        Raises:
            ModelLoadError: If the model cannot be loaded (state becomes FAILED)
            AcquisitionError: If the camera cannot be opened (state becomes FAILED)
        """
        if not self.fsm.can_start:
            logger.info(f"Start ignored: pipeline is {self.fsm.state.value}")
            return False

        self.fsm.transition(PipelineState.STARTING, "start_requested")
        self._session += 1
        session = self._session

        classifier = None
        frame_source = None

        try:
            self._status("Loading model...")
            classifier = await asyncio.to_thread(self._classifier_loader, self.model_ref)

            if self._superseded(session):
                self._release(classifier, None)
                return False

            self._status("Starting camera...")
            frame_source = await asyncio.to_thread(self._frame_source_opener, self.constraints)

        except BaseException as e:
            self._release(classifier, frame_source)
            if not self._superseded(session):
                self.fsm.transition(PipelineState.FAILED, type(e).__name__)
                logger.error(f"Pipeline startup failed: {e}")
                self._status(f"Startup failed: {e}")
            raise

        if self._superseded(session):
            self._release(classifier, frame_source)
            return False

        self.classifier = classifier
        self.frame_source = frame_source
        self.start_time = time.time()

        self.fsm.transition(PipelineState.RUNNING, "resources_acquired")
        self._status("Camera running")

        return True

    def _superseded(self, session: int) -> bool:
        """True if a stop() happened since the given start() began."""
        return session != self._session or self.fsm.state != PipelineState.STARTING

    async def tick(self) -> Optional[DetectionResult]:
        """
        Run one capture -> infer -> decide -> emit cycle.

        Frame or inference failures produce a degraded result and keep the
        session RUNNING. Sink failures are logged.

        Returns:
            Emitted result, or None if the pipeline is not running
        """
        if not self.fsm.is_running:
            return None

        async with self._tick_lock:
            if not self.fsm.is_running:
                return None

            frame_source = self.frame_source
            classifier = self.classifier

            try:
                frame = await asyncio.to_thread(frame_source.current_frame)
                self._present_frame(frame)
                candidates = await asyncio.to_thread(classifier.infer, frame)
            except Exception as e:
                logger.error(f"Tick failed, emitting degraded result: {e}")
                result = DetectionResult.degraded()
            else:
                result = self.policy.decide(candidates)

            self.tick_count += 1
            if result.accepted:
                self.accepted_count += 1
            if result.outcome == DetectionOutcome.DEGRADED:
                self.degraded_count += 1

            self._status(result.warning or f"{result.tool_name} ({result.confidence_text})")
            self._emit(result)

            return result

    async def stop(self) -> None:
        """
        Stop the session and release the camera and model.

        Safe while a tick is in flight: the state changes immediately, the
        in-flight tick's result is the last one emitted, and resources are
        released once it returns.
        """
        if self.fsm.state == PipelineState.IDLE:
            return

        self._session += 1
        self.fsm.transition(PipelineState.IDLE, "stop_requested")

        # Detach before waiting; a start() during the wait installs its own pair.
        classifier, frame_source = self.classifier, self.frame_source
        self.classifier = None
        self.frame_source = None

        async with self._tick_lock:
            pass

        self._release(classifier, frame_source)
        self._status("Stopped")

        logger.info(f"Pipeline stopped after {self.tick_count} ticks")

    def _release(self, classifier: Optional[Classifier], frame_source: Optional[FrameSource]) -> None:
        """Release acquired resources, camera first."""
        if frame_source is not None:
            try:
                frame_source.close()
            except Exception as e:
                logger.warning(f"Failed to close frame source: {e}")

        if classifier is not None:
            try:
                classifier.close()
            except Exception as e:
                logger.warning(f"Failed to close classifier: {e}")

    def _present_frame(self, frame) -> None:
        try:
            self.sink.frame(frame)
        except Exception as e:
            logger.error(f"Sink failed to take frame: {e}")

    def _emit(self, result: DetectionResult) -> None:
        try:
            self.sink.emit(result)
        except Exception as e:
            logger.error(f"Sink failed to present result: {e}")

    def _status(self, message: str) -> None:
        try:
            self.sink.status(message)
        except Exception as e:
            logger.error(f"Sink failed to present status: {e}")

    def set_confidence_threshold(self, confidence_threshold: float) -> None:
        """Tune the acceptance threshold of a live session."""
        self.policy.update_threshold(confidence_threshold)
        self.config.pipeline.confidence_threshold = confidence_threshold

    def get_statistics(self) -> Dict[str, Any]:
        """Get pipeline statistics."""
        stats = {
            'tick_count': self.tick_count,
            'accepted_count': self.accepted_count,
            'degraded_count': self.degraded_count,
            'confidence_threshold': self.policy.confidence_threshold,
            'runtime': time.time() - self.start_time if self.start_time > 0 else 0.0,
            'is_running': self.is_running
        }
        stats.update(self.fsm.get_statistics())
        return stats

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()
        self.sink.close()


def create_pipeline(
    config_path: Optional[Union[str, Path]] = None,
    sink: Optional[PresentationSink] = None
) -> DetectionPipeline:
    """
    Factory function to create pipeline from a configuration file.

    Args:
        config_path: Path to configuration file (defaults if None)
        sink: Presentation sink

    Returns:
        DetectionPipeline instance
    """
    from .config import load_config

    config = load_config(config_path)

    return DetectionPipeline(config, sink=sink)
