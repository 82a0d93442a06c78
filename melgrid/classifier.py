"""Classifier handles.

The classifier is opaque to the pipeline: anything with
predict(batch) -> scores, where batch is a float32 array of shape
[1, frames, mel_bands, 1], will do. Exported models are loaded as
TorchScript modules.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import numpy as np

from .errors import ClassifierUnavailableError

logger = logging.getLogger(__name__)


@runtime_checkable
class Classifier(Protocol):
    """Protocol for classifier handles."""

    def predict(self, batch: np.ndarray) -> Any: ...


def detect_device(requested: str) -> str:
    """Resolve device string; when 'auto', pick cuda > mps > cpu."""
    if requested != "auto":
        return requested

    import torch

    if torch.cuda.is_available():
        return "cuda"
    if torch.backends.mps.is_available():
        return "mps"
    return "cpu"


class TorchScriptClassifier:
    """Classifier backed by a TorchScript module."""

    def __init__(self, module: Any, device: str = "cpu", source: Path | None = None):
        """Initialize classifier.

        Args:
            module: Loaded TorchScript module (already in eval mode)
            device: Device the module lives on
            source: Path the module was loaded from
        """
        self.module = module
        self.device = device
        self.source = source

    def predict(self, batch: np.ndarray) -> np.ndarray:
        """Run the module on a [1, frames, mel_bands, 1] batch.

        Returns:
            Flat float32 score vector
        """
        import torch

        with torch.inference_mode():
            inputs = torch.from_numpy(np.ascontiguousarray(batch, dtype=np.float32)).to(
                self.device
            )
            outputs = self.module(inputs)
            scores = outputs.detach().cpu().numpy().reshape(-1).copy()
        del inputs, outputs
        return scores


def load_classifier(path: Path | str, device: str = "auto") -> TorchScriptClassifier:
    """Load a TorchScript classifier from disk.

    Args:
        path: Path to the exported module (.pt)
        device: 'auto', 'cpu', 'cuda' or 'mps'

    Returns:
        TorchScriptClassifier ready for inference

    Raises:
        ClassifierUnavailableError: If the file is missing or cannot be loaded
    """
    path = Path(path)
    if not path.exists():
        raise ClassifierUnavailableError(f"Model file not found: {path}")

    try:
        import torch

        resolved = detect_device(device)
        module = torch.jit.load(str(path), map_location=resolved)
        module.eval()
    except Exception as e:
        raise ClassifierUnavailableError(f"Could not load model {path}: {e}") from e

    logger.info("[Classifier] Loaded %s on %s", path.name, resolved)
    return TorchScriptClassifier(module, device=resolved, source=path)


def warm_up(classifier: Classifier, frame_count: int, mel_bands: int, label_count: int) -> None:
    """Run one prediction on silence to initialise the model.

    Also checks that the model emits one score per label, so a label set that
    disagrees with the model is caught at load time.

    Raises:
        ClassifierUnavailableError: If the warm-up call fails or the output
                                    length differs from label_count
    """
    batch = np.zeros((1, frame_count, mel_bands, 1), dtype=np.float32)
    try:
        scores = np.asarray(classifier.predict(batch)).reshape(-1)
    except Exception as e:
        raise ClassifierUnavailableError(f"Classifier warm-up failed: {e}") from e

    if len(scores) != label_count:
        raise ClassifierUnavailableError(
            f"Classifier emits {len(scores)} scores but {label_count} labels are configured"
        )
