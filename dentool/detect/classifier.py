"""Image classifier adapters mapping a frame to ranked class candidates."""

import json
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple, Union
import numpy as np
import logging

from ..errors import InferenceError, ModelLoadError
from ..logic.decision import ClassificationCandidate

logger = logging.getLogger(__name__)

# Optional imports - graceful degradation if not available
try:
    from ultralytics import YOLO
    YOLO_AVAILABLE = True
except ImportError:
    logger.warning("Ultralytics YOLO not available. Install with: pip install ultralytics")
    YOLO_AVAILABLE = False


class ModelRef(NamedTuple):
    """Model asset reference: weights/topology plus optional label metadata."""
    model_path: Union[str, Path]
    metadata_path: Optional[Union[str, Path]] = None


def load_labels(metadata_path: Union[str, Path]) -> List[str]:
    """
    Load class labels from model metadata.

    Accepts a Teachable Machine style ``metadata.json`` (``{"labels": [...]}``)
    or a ``labels.txt`` with one label per line, optionally prefixed by its
    class index (``0 Mirror``).

    Args:
        metadata_path: Path to the metadata file

    Returns:
        Labels in class-index order

    Raises:
        ModelLoadError: If the file is missing or cannot be parsed
    """
    path = Path(metadata_path)
    if not path.exists():
        raise ModelLoadError(f"Model metadata not found: {path}")

    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ModelLoadError(f"Cannot read model metadata {path}: {e}") from e

    if path.suffix.lower() == '.json':
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ModelLoadError(f"Corrupt model metadata {path}: {e}") from e

        labels = data.get('labels') if isinstance(data, dict) else None
        if not isinstance(labels, list) or not all(isinstance(label, str) for label in labels):
            raise ModelLoadError(f"Model metadata {path} has no 'labels' list")
    else:
        labels = []
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            index, _, name = line.partition(' ')
            labels.append(name.strip() if index.isdigit() and name else line)

    if not labels:
        raise ModelLoadError(f"Model metadata {path} lists no labels")
    if len(set(labels)) != len(labels):
        raise ModelLoadError(f"Model metadata {path} has duplicate labels")

    return labels


def validate_frame(frame: np.ndarray, input_size: Tuple[int, int]) -> None:
    """
    Check that a frame can be submitted for inference.

    Args:
        frame: Frame to check
        input_size: Expected (height, width)

    Raises:
        InferenceError: If the frame is malformed or wrong-sized
    """
    if not isinstance(frame, np.ndarray):
        raise InferenceError(f"Frame must be a numpy array, got {type(frame).__name__}")
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise InferenceError(f"Frame must have shape (H, W, 3), got {frame.shape}")
    if frame.shape[:2] != tuple(input_size):
        raise InferenceError(f"Frame size {frame.shape[:2]} does not match model input {tuple(input_size)}")
    if frame.size == 0:
        raise InferenceError("Frame is empty")


class Classifier:
    """Base class for image classifiers."""

    def __init__(self, labels: List[str], input_size: Tuple[int, int] = (224, 224)):
        self.labels = list(labels)
        self.input_size = input_size

    @property
    def num_classes(self) -> int:
        return len(self.labels)

    def infer(self, frame: np.ndarray) -> List[ClassificationCandidate]:
        """
        Classify one frame.

        Args:
            frame: BGR frame of shape (height, width, 3)

        Returns:
            One candidate per class, in class-index order

        Raises:
            InferenceError: On a malformed frame or backend failure
        """
        validate_frame(frame, self.input_size)
        probabilities = self._predict(frame)

        if len(probabilities) != self.num_classes:
            raise InferenceError(
                f"Model returned {len(probabilities)} scores for {self.num_classes} labels"
            )

        return [
            ClassificationCandidate(label=label, probability=float(p))
            for label, p in zip(self.labels, probabilities)
        ]

    def _predict(self, frame: np.ndarray) -> np.ndarray:
        """Return raw per-class scores for a validated frame."""
        raise NotImplementedError

    def close(self) -> None:
        """Release model resources."""


class YOLOClassifier(Classifier):
    """Ultralytics classification model (``*-cls`` weights)."""

    def __init__(
        self,
        model_ref: ModelRef,
        device: str = "auto",
        imgsz: int = 224
    ):
        """
        Initialize and load the classifier.

        Args:
            model_ref: Model asset reference
            device: Device to use ('cpu', 'cuda', or 'auto')
            imgsz: Input image size

        Raises:
            ModelLoadError: If the model cannot be loaded
        """
        if not YOLO_AVAILABLE:
            raise ModelLoadError("YOLO not available. Install ultralytics: pip install ultralytics")

        self.model_ref = model_ref
        self.model_path = Path(model_ref.model_path)
        self.imgsz = imgsz
        self.device = self._resolve_device(device)
        self.model = None

        labels = self._load_model(model_ref.metadata_path)
        super().__init__(labels, input_size=(imgsz, imgsz))

        logger.info(f"Classifier loaded: {self.model_path} on {self.device}")
        logger.info(f"Classes: {self.labels}")

    @staticmethod
    def _resolve_device(device: str) -> str:
        if device != "auto":
            return device
        import torch
        return "cuda" if torch.cuda.is_available() else "cpu"

    def _load_model(self, metadata_path: Optional[Union[str, Path]]) -> List[str]:
        """Load weights and resolve class labels."""
        if not self.model_path.exists():
            raise ModelLoadError(f"Model weights not found: {self.model_path}")

        try:
            self.model = YOLO(str(self.model_path))
        except Exception as e:
            raise ModelLoadError(f"Failed to load model {self.model_path}: {e}") from e

        task = getattr(self.model, 'task', None)
        if task != 'classify':
            raise ModelLoadError(f"Model {self.model_path} is a {task!r} model, expected 'classify'")

        names = getattr(self.model, 'names', None) or {}
        model_labels = [names[i] for i in sorted(names)]

        if metadata_path is None:
            if not model_labels:
                raise ModelLoadError(f"Model {self.model_path} has no class names and no metadata was given")
            return model_labels

        labels = load_labels(metadata_path)
        if model_labels and len(labels) != len(model_labels):
            raise ModelLoadError(
                f"Metadata lists {len(labels)} labels but the model has {len(model_labels)} classes"
            )
        return labels

    def _predict(self, frame: np.ndarray) -> np.ndarray:
        try:
            results = self.model.predict(frame, imgsz=self.imgsz, device=self.device, verbose=False)
        except Exception as e:
            raise InferenceError(f"Classification failed: {e}") from e

        if not results or results[0].probs is None:
            raise InferenceError("Model returned no class probabilities")

        return results[0].probs.data.cpu().numpy()

    def close(self) -> None:
        self.model = None


def load_classifier(
    model_ref: ModelRef,
    device: str = "auto",
    imgsz: int = 224
) -> Classifier:
    """
    Factory function to load the classifier for a model reference.

    Args:
        model_ref: Model asset reference
        device: Device to use
        imgsz: Input image size

    Returns:
        Loaded classifier

    Raises:
        ModelLoadError: If the asset is missing/corrupt or no backend is installed
    """
    return YOLOClassifier(model_ref, device=device, imgsz=imgsz)


def is_classifier_available() -> bool:
    """Check if the inference backend is available."""
    return YOLO_AVAILABLE
