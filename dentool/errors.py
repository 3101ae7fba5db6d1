"""Error types raised by the detection pipeline and its adapters."""


class DetectionError(Exception):
    """Base class for dental tool detection errors."""


class AcquisitionError(DetectionError):
    """Camera device or permission is unavailable."""


class ModelLoadError(DetectionError):
    """Model asset is missing or corrupt, or no inference backend is installed."""


class InferenceError(DetectionError):
    """A single inference call failed (malformed frame or backend error)."""


class SinkError(DetectionError):
    """A presentation sink failed to render a result."""
