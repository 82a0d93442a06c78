"""Configuration management using Pydantic and YAML."""

import math
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from melgrid import constants


class AudioConfig(BaseModel):
    """Audio input configuration."""

    supported_formats: list[str] = ["wav", "mp3", "flac", "ogg", "m4a", "aiff", "aif"]


class FeatureConfig(BaseModel):
    """Feature extraction constants (must match the trained classifier)."""

    target_sample_rate: int = Field(gt=0, default=constants.TARGET_SAMPLE_RATE)
    mel_bands: int = Field(ge=1, default=constants.MEL_BANDS)
    frame_count: int = Field(ge=1, default=constants.FRAME_COUNT)
    frame_size: int = Field(ge=16, default=constants.FRAME_SIZE)
    hop_size: int = Field(ge=1, default=constants.HOP_SIZE)
    log_epsilon: float = Field(gt=0, default=constants.LOG_EPSILON)
    padding_floor: float = constants.PADDING_FLOOR

    @model_validator(mode="after")
    def check_consistency(self) -> "FeatureConfig":
        """Padding must sit on the log floor and hops must not skip samples."""
        if self.hop_size > self.frame_size:
            raise ValueError("hop_size must not exceed frame_size")
        floor = 10 * math.log10(self.log_epsilon)
        if not math.isclose(self.padding_floor, floor, abs_tol=1e-6):
            raise ValueError(
                f"padding_floor ({self.padding_floor}) must equal "
                f"10 * log10(log_epsilon) = {floor:.6f}"
            )
        return self


class ModelConfig(BaseModel):
    """Classifier configuration."""

    path: Path = Path("model/model.pt")
    device: str = "auto"
    warmup: bool = True
    labels: list[str] = Field(default_factory=lambda: list(constants.GTZAN_LABELS), min_length=1)

    @field_validator("labels")
    @classmethod
    def labels_unique(cls, labels: list[str]) -> list[str]:
        if len(set(labels)) != len(labels):
            raise ValueError("labels must be unique")
        return labels


class ResultsConfig(BaseModel):
    """Results view configuration."""

    top_k: int = Field(ge=1, default=constants.TOP_K)


class WorkerConfig(BaseModel):
    """Feature extraction worker configuration."""

    isolation: Literal["process", "thread"] = "process"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = "genrescope.log"


class GenrescopeConfig(BaseModel):
    """Main application configuration."""

    audio: AudioConfig = Field(default_factory=AudioConfig)
    features: FeatureConfig = Field(default_factory=FeatureConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    results: ResultsConfig = Field(default_factory=ResultsConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Path | None = None) -> GenrescopeConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        GenrescopeConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    if config_path is None:
        # Try multiple locations
        possible_paths = [
            Path(__file__).parent.parent.parent / "config" / "config.yaml",
            Path.home() / ".config" / "genrescope" / "config.yaml",
            Path.home() / ".genrescope" / "config.yaml",
        ]

        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            config_path = possible_paths[0]

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    return GenrescopeConfig(**data)
