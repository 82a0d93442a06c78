"""Data model for one classification pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from .errors import InvalidRateError


@dataclass(frozen=True, slots=True)
class AudioClip:
    """A decoded mono clip, immutable for the duration of one request.

    Attributes:
        samples: 1-D float32 sample buffer (read-only copy)
        sample_rate: Native sample rate in Hz
        source: Where the clip came from (file path, "recording", ...)
    """

    samples: np.ndarray
    sample_rate: int
    source: Path | str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.sample_rate, bool) or not isinstance(
            self.sample_rate, (int, np.integer)
        ):
            raise InvalidRateError(f"Sample rate must be an integer, got {self.sample_rate!r}")
        if self.sample_rate <= 0:
            raise InvalidRateError(f"Sample rate must be positive, got {self.sample_rate}")

        samples = np.array(self.samples, dtype=np.float32)
        if samples.ndim != 1:
            raise ValueError(f"Expected mono samples (1-D), got shape {samples.shape}")
        samples.setflags(write=False)

        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @property
    def duration(self) -> float:
        """Clip length in seconds."""
        return len(self.samples) / self.sample_rate

    @property
    def num_samples(self) -> int:
        return len(self.samples)


@dataclass(frozen=True, slots=True)
class RankedResult:
    """One (label, score) pair of a ranking.

    Attributes:
        label: Genre name
        score: Raw classifier score
        index: Position of the label in the label set
    """

    label: str
    score: float
    index: int

    @property
    def percent(self) -> float:
        return self.score * 100


@dataclass(frozen=True, slots=True)
class TopPrediction:
    """A ranked label prepared for display."""

    label: str
    percent: float

    @property
    def formatted(self) -> str:
        return f"{self.percent:.1f}%"


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of a successful classification pass."""

    ranking: list[RankedResult]
    top: list[TopPrediction]
    duration: float = 0.0
    generation: int = 0
    source: Path | str | None = field(default=None, compare=False)

    @property
    def predicted_genre(self) -> str:
        """Label with the highest score."""
        return self.ranking[0].label

    @property
    def confidence(self) -> float:
        """Score of the predicted genre as a percentage."""
        return self.ranking[0].percent

    def to_dict(self) -> dict:
        """Plain-data view (used for JSON output)."""
        return {
            "predicted_genre": self.predicted_genre,
            "duration": round(self.duration, 3),
            "top": [{"label": p.label, "percent": round(p.percent, 2)} for p in self.top],
            "ranking": [
                {"label": r.label, "score": r.score, "index": r.index} for r in self.ranking
            ],
        }
