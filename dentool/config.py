"""Configuration management for the dental tool recognition system."""

from pathlib import Path
from typing import Any, Dict, Optional, Union
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .logic.decision import ToolProfile


class PipelineConfig(BaseModel):
    """Configuration for the detection pipeline and its confidence policy."""
    confidence_threshold: float = Field(0.75, ge=0.0, le=1.0, description="Minimum probability to accept a prediction")
    tick_interval_s: float = Field(0.15, gt=0.0, description="Minimum spacing between inference ticks in seconds")
    sentinel_label: Optional[str] = Field("Nothing", description="Class label meaning no tool is present")


class CameraConfig(BaseModel):
    """Frame acquisition constraints."""
    source: Union[int, str] = Field(0, description="Camera index, video file path or stream URL")
    width: int = Field(224, ge=16, description="Frame width delivered to the classifier")
    height: int = Field(224, ge=16, description="Frame height delivered to the classifier")
    facing_mode: str = Field(
        "environment",
        description="Advisory camera preference (environment or user); OpenCV opens `source` regardless"
    )
    torch: bool = Field(True, description="Request the camera torch when available")
    buffer_size: int = Field(1, ge=1, description="Capture buffer size for live sources")

    @field_validator('facing_mode')
    @classmethod
    def validate_facing_mode(cls, v):
        if v not in ['environment', 'user']:
            raise ValueError('facing_mode must be either "environment" or "user"')
        return v


class ModelConfig(BaseModel):
    """Model asset reference and inference settings."""
    model_config = ConfigDict(protected_namespaces=())

    model_path: str = Field("model/model.pt", description="Path to classification model weights")
    metadata_path: Optional[str] = Field("model/metadata.json", description="Path to model metadata with class labels")
    device: str = Field("auto", description="Device to use: cpu, cuda, or auto")
    imgsz: int = Field(224, ge=16, description="Inference image size")

    @field_validator('device')
    @classmethod
    def validate_device(cls, v):
        if v not in ['cpu', 'cuda', 'auto']:
            raise ValueError('device must be one of: cpu, cuda, auto')
        return v


class ToolConfig(BaseModel):
    """Presentation data for one tool class."""
    display_name: Optional[str] = Field(None, description="Name shown to the user (defaults to the label)")
    region: str = Field("-", description="Mouth region where the tool is used")
    diagram: Optional[str] = Field(None, description="Path to the mouth diagram image")


def default_tools() -> Dict[str, ToolConfig]:
    """Tool table of the dental demo."""
    return {
        "Mirror": ToolConfig(region="All quadrants (visual inspection)", diagram="mouth-diagrams/mirror.png"),
        "Explorer": ToolConfig(region="Occlusal surfaces", diagram="mouth-diagrams/explorer.png"),
        "Scaler": ToolConfig(region="Gingival margin", diagram="mouth-diagrams/scaler.png"),
        "Drill": ToolConfig(region="Enamel & dentin", diagram="mouth-diagrams/drill.png"),
        "Nothing": ToolConfig(display_name="Nothing here", region="-"),
    }


class RuntimeConfig(BaseModel):
    """Configuration for runtime behavior."""
    draw_overlay: bool = Field(True, description="Render results onto the camera frame")
    show_confidence: bool = Field(True, description="Show prediction confidence")
    show_diagram: bool = Field(True, description="Show the mouth diagram thumbnail")
    window_name: str = Field("Dental Tool Recognition", description="Overlay window title")


class LoggingConfig(BaseModel):
    """Configuration for logging and result recording."""
    out_dir: str = Field("runs/results", description="Output directory for recorded results")
    record_results: bool = Field(False, description="Record every detection result to disk")
    write_jsonl: bool = Field(True, description="Write results to JSONL format")
    write_csv: bool = Field(True, description="Write results to CSV format")
    log_level: str = Field("INFO", description="Logging level")
    max_log_files: int = Field(10, ge=1, description="Maximum number of result files to keep")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        if v not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError('log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL')
        return v


class Config(BaseModel):
    """Main configuration class for the dental tool recognition system."""
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    tools: Dict[str, ToolConfig] = Field(default_factory=default_tools)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('tools')
    @classmethod
    def validate_tools(cls, v):
        if not v:
            raise ValueError('tools must define at least one class label')
        return v

    def tool_profiles(self) -> Dict[str, ToolProfile]:
        """Build the immutable label -> ToolProfile table."""
        return {
            label: ToolProfile(
                label=label,
                display_name=tool.display_name or label,
                region=tool.region,
                diagram_ref=tool.diagram
            )
            for label, tool in self.tools.items()
        }

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Config":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        return self.model_dump(exclude_none=True)


def load_config(path: Optional[Union[str, Path]] = None) -> Config:
    """Load configuration, falling back to defaults when no path is given."""
    if path is None:
        return Config()
    return Config.from_yaml(path)
