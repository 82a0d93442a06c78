"""Inference engine: feature grid -> probability vector."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import numpy as np

from .classifier import Classifier
from .constants import FRAME_COUNT, GTZAN_LABELS, MEL_BANDS
from .errors import (
    ClassifierUnavailableError,
    GridShapeError,
    InferenceError,
    LabelMismatchError,
)

logger = logging.getLogger(__name__)


class TensorScope:
    """Tracks the intermediate tensors of one predict call.

    Everything tracked is released when the scope exits, whether the call
    returned or raised. Objects exposing dispose() (framework tensors) get it
    called; plain arrays are simply dropped.
    """

    def __init__(self) -> None:
        self._tensors: list[Any] = []

    def track(self, tensor: Any) -> Any:
        self._tensors.append(tensor)
        return tensor

    def __len__(self) -> int:
        return len(self._tensors)

    def release(self) -> None:
        while self._tensors:
            tensor = self._tensors.pop()
            dispose = getattr(tensor, "dispose", None)
            if callable(dispose):
                try:
                    dispose()
                except Exception as e:
                    logger.warning("[InferenceEngine] Failed to dispose tensor: %s", e)

    def __enter__(self) -> "TensorScope":
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


class InferenceEngine:
    """Wraps the classifier call for fixed-shape feature grids.

    The grid must be exactly (frame_count, mel_bands); it is reshaped to the
    [1, frame_count, mel_bands, 1] tensor the classifier was trained on.
    """

    def __init__(
        self,
        classifier: Classifier | None = None,
        frame_count: int = FRAME_COUNT,
        mel_bands: int = MEL_BANDS,
        labels: Sequence[str] = GTZAN_LABELS,
    ):
        """Initialize engine.

        Args:
            classifier: Loaded classifier handle (None until loaded)
            frame_count: Expected number of grid rows
            mel_bands: Expected number of grid columns
            labels: Label set, in classifier output order
        """
        self.classifier = classifier
        self.frame_count = frame_count
        self.mel_bands = mel_bands
        self.labels = tuple(labels)
        self._scope: TensorScope | None = None

    @property
    def input_shape(self) -> tuple[int, int, int, int]:
        return (1, self.frame_count, self.mel_bands, 1)

    @property
    def active_tensor_count(self) -> int:
        """Number of tensors held by an in-progress call (0 when idle)."""
        return len(self._scope) if self._scope is not None else 0

    def predict(self, grid: np.ndarray) -> np.ndarray:
        """Run the classifier on a normalized grid.

        Args:
            grid: Array of shape (frame_count, mel_bands)

        Returns:
            Probability vector (float64) with one score per label

        Raises:
            ClassifierUnavailableError: If no classifier is loaded
            GridShapeError: If the grid has the wrong shape
            LabelMismatchError: If the output length differs from the label set
            InferenceError: If the classifier call fails or returns non-finite scores
        """
        if self.classifier is None:
            raise ClassifierUnavailableError("Classifier is not loaded")

        grid = np.asarray(grid)
        expected = (self.frame_count, self.mel_bands)
        if grid.shape != expected:
            raise GridShapeError(f"Feature grid has shape {grid.shape}, expected {expected}")

        scope = TensorScope()
        self._scope = scope
        try:
            batch = scope.track(
                np.ascontiguousarray(grid, dtype=np.float32).reshape(self.input_shape)
            )
            try:
                output = scope.track(self.classifier.predict(batch))
                probabilities = np.array(output, dtype=np.float64).reshape(-1)
            except Exception as e:
                raise InferenceError(f"Prediction failed: {e}") from e
        finally:
            scope.release()
            self._scope = None

        if not np.all(np.isfinite(probabilities)):
            raise InferenceError("Classifier returned non-finite scores")

        if len(probabilities) != len(self.labels):
            raise LabelMismatchError(
                f"Classifier returned {len(probabilities)} scores "
                f"for {len(self.labels)} labels"
            )

        return probabilities
