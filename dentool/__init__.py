"""
Real-time Dental Tool Recognition

Captures camera frames, classifies the dental tool in view with a pre-trained
image classifier and presents the tool name, confidence, mouth region and
diagram through pluggable presentation sinks.
"""

__version__ = "1.0.0"
__author__ = "Dental Tool Recognition Team"

from .pipeline import DetectionPipeline
from .config import Config

__all__ = ["DetectionPipeline", "Config"]
