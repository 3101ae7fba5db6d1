"""Confidence policy: best-candidate selection and acceptance decision."""

from enum import Enum
from typing import Any, Dict, Iterable, Mapping, NamedTuple, Optional
import math
import time
import logging

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_WARNING = "Low confidence. Adjust tool position and lighting."
NO_TOOL_MESSAGE = "No tool detected"
UNCERTAIN_NAME = "Uncertain"


class ToolProfile(NamedTuple):
    """Static presentation data for one recognised class label."""
    label: str
    display_name: str
    region: str = "-"
    diagram_ref: Optional[str] = None


class ClassificationCandidate(NamedTuple):
    """One (label, probability) output of a single inference call."""
    label: str
    probability: float


class DetectionOutcome(Enum):
    """Presentation state of a detection result."""
    TOOL = "tool"
    NOTHING = "nothing"
    LOW_CONFIDENCE = "low_confidence"
    UNRECOGNIZED = "unrecognized"
    DEGRADED = "degraded"


class DetectionResult(NamedTuple):
    """Output of one pipeline tick."""
    selected_label: str
    confidence: float
    accepted: bool
    profile: Optional[ToolProfile]
    outcome: DetectionOutcome
    timestamp: float

    @property
    def confidence_text(self) -> str:
        """Confidence formatted as a percentage, e.g. ``92.0%``."""
        return format_confidence(self.confidence)

    @property
    def tool_name(self) -> str:
        """Name shown in the tool name field."""
        if self.outcome == DetectionOutcome.TOOL and self.profile is not None:
            return self.profile.display_name
        if self.outcome == DetectionOutcome.NOTHING:
            return NO_TOOL_MESSAGE
        return UNCERTAIN_NAME

    @property
    def region(self) -> str:
        """Mouth region shown for the result."""
        if self.outcome == DetectionOutcome.TOOL and self.profile is not None:
            return self.profile.region
        return "-"

    @property
    def warning(self) -> str:
        """Low-confidence warning text, empty when accepted."""
        if self.accepted:
            return ""
        if self.outcome == DetectionOutcome.DEGRADED:
            return "Recognition unavailable for this frame."
        return LOW_CONFIDENCE_WARNING

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a flat dictionary."""
        return {
            'timestamp': self.timestamp,
            'selected_label': self.selected_label,
            'confidence': self.confidence,
            'accepted': self.accepted,
            'outcome': self.outcome.value,
            'tool_name': self.tool_name,
            'region': self.region,
            'diagram': self.profile.diagram_ref if self.profile else None,
            'warning': self.warning,
        }

    @classmethod
    def degraded(cls, timestamp: Optional[float] = None) -> "DetectionResult":
        """Result emitted when a tick could not classify its frame."""
        return cls(
            selected_label="",
            confidence=0.0,
            accepted=False,
            profile=None,
            outcome=DetectionOutcome.DEGRADED,
            timestamp=time.time() if timestamp is None else timestamp
        )


def format_confidence(confidence: float) -> str:
    """Format a probability as a one-decimal percentage."""
    return f"{confidence * 100:.1f}%"


def select_best(candidates: Iterable[ClassificationCandidate]) -> Optional[ClassificationCandidate]:
    """
    Select the candidate with the highest probability.

    Ties keep the first candidate encountered, so the choice is deterministic
    for a deterministic candidate ordering. NaN probabilities never win.

    Args:
        candidates: Candidates from one inference call

    Returns:
        Best candidate, or None for an empty sequence
    """
    best = None
    for candidate in candidates:
        if math.isnan(candidate.probability):
            continue
        if best is None or candidate.probability > best.probability:
            best = candidate
    return best


class ConfidencePolicy:
    """Decides whether a classification is presentation-worthy."""

    def __init__(
        self,
        profiles: Mapping[str, ToolProfile],
        confidence_threshold: float = 0.75,
        sentinel_label: Optional[str] = "Nothing"
    ):
        """
        Initialize confidence policy.

        Args:
            profiles: Tool profiles keyed by class label
            confidence_threshold: Minimum probability to accept a candidate
            sentinel_label: Label of the "no tool present" class
        """
        if not 0.0 <= confidence_threshold <= 1.0:
            raise ValueError(f"confidence_threshold must be within [0, 1], got {confidence_threshold}")

        self.profiles = dict(profiles)
        self.confidence_threshold = confidence_threshold
        self.sentinel_label = sentinel_label

        logger.info(
            f"Confidence policy initialized: threshold={confidence_threshold}, "
            f"profiles={len(self.profiles)}, sentinel={sentinel_label!r}"
        )

    def decide(
        self,
        candidates: Iterable[ClassificationCandidate],
        timestamp: Optional[float] = None
    ) -> DetectionResult:
        """
        Apply the decision policy to one tick's candidates.

        Args:
            candidates: Candidates from one inference call
            timestamp: Result timestamp (uses current time if None)

        Returns:
            Detection result
        """
        if timestamp is None:
            timestamp = time.time()

        best = select_best(candidates)
        if best is None:
            return DetectionResult(
                selected_label="",
                confidence=0.0,
                accepted=False,
                profile=None,
                outcome=DetectionOutcome.LOW_CONFIDENCE,
                timestamp=timestamp
            )

        confidence = min(max(float(best.probability), 0.0), 1.0)
        profile = self.profiles.get(best.label)
        confident = confidence >= self.confidence_threshold

        if confident and profile is not None:
            if best.label == self.sentinel_label:
                return DetectionResult(best.label, confidence, True, None, DetectionOutcome.NOTHING, timestamp)
            return DetectionResult(best.label, confidence, True, profile, DetectionOutcome.TOOL, timestamp)

        outcome = DetectionOutcome.UNRECOGNIZED if confident else DetectionOutcome.LOW_CONFIDENCE
        if outcome == DetectionOutcome.UNRECOGNIZED:
            logger.debug(f"Unrecognized label {best.label!r} at {format_confidence(confidence)}")

        return DetectionResult(best.label, confidence, False, None, outcome, timestamp)

    def update_threshold(self, confidence_threshold: float) -> None:
        """Update the acceptance threshold."""
        if not 0.0 <= confidence_threshold <= 1.0:
            raise ValueError(f"confidence_threshold must be within [0, 1], got {confidence_threshold}")
        self.confidence_threshold = confidence_threshold
        logger.info(f"Confidence threshold updated: {confidence_threshold}")


def create_confidence_policy(**kwargs) -> ConfidencePolicy:
    """
    Factory function to create confidence policy.

    Args:
        **kwargs: Arguments for ConfidencePolicy

    Returns:
        ConfidencePolicy instance
    """
    return ConfidencePolicy(**kwargs)
