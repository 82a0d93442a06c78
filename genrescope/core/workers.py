"""Background workers used by the classification pipeline.

Each worker runs one blocking job off the UI thread and reports back through
Qt signals. Every result carries the generation of the request that started
it, so the pipeline can drop results that a newer request has superseded.
"""

import logging
import os
from pathlib import Path
from typing import Any

from PySide6.QtCore import QThread, Signal

from genrescope.utils.audio_io import decode_audio_file
from melgrid.classifier import load_classifier, warm_up
from melgrid.extraction import ExtractionOk, ExtractionRequest, FeatureExtractionPool


class DecodeWorker(QThread):
    """Worker decoding an audio file into an AudioClip."""

    complete = Signal(int, object)  # generation, AudioClip
    error = Signal(int, str)  # generation, error message

    def __init__(
        self,
        generation: int,
        filepath: Path,
        supported_formats: list[str] | None = None,
        parent: Any = None,
    ):
        """Initialize worker.

        Args:
            generation: Load request id
            filepath: Path to audio file
            supported_formats: Allowed extensions
            parent: Parent object
        """
        super().__init__(parent)
        self.generation = generation
        self.filepath = Path(filepath)
        self.supported_formats = supported_formats
        self.setObjectName(f"DecodeWorker-{generation}-{os.path.basename(filepath)[:20]}")

    def run(self) -> None:
        """Decode the file."""
        try:
            clip = decode_audio_file(self.filepath, self.supported_formats)
            self.complete.emit(self.generation, clip)
        except Exception as e:
            logging.warning(f"[DecodeWorker] {self.filepath.name}: {e}")
            self.error.emit(self.generation, str(e))


class ClassifierLoadWorker(QThread):
    """Worker loading and warming up the classifier."""

    complete = Signal(object)  # classifier handle
    error = Signal(str)  # error message

    def __init__(
        self,
        model_path: Path,
        device: str,
        frame_count: int,
        mel_bands: int,
        label_count: int,
        warmup: bool = True,
        parent: Any = None,
    ):
        """Initialize worker.

        Args:
            model_path: Path to the exported classifier
            device: Torch device ('auto', 'cpu', ...)
            frame_count: Frames of the input tensor (for warm-up)
            mel_bands: Mel bands of the input tensor (for warm-up)
            label_count: Expected number of output scores
            warmup: Run a prediction on silence after loading
            parent: Parent object
        """
        super().__init__(parent)
        self.model_path = Path(model_path)
        self.device = device
        self.frame_count = frame_count
        self.mel_bands = mel_bands
        self.label_count = label_count
        self.warmup = warmup
        self.setObjectName(f"ClassifierLoadWorker-{self.model_path.name[:20]}")

    def run(self) -> None:
        """Load the classifier."""
        try:
            classifier = load_classifier(self.model_path, device=self.device)
            if self.warmup:
                warm_up(classifier, self.frame_count, self.mel_bands, self.label_count)
            self.complete.emit(classifier)
        except Exception as e:
            logging.error(f"[ClassifierLoadWorker] {e}")
            self.error.emit(str(e))


class FeatureExtractionWorker(QThread):
    """Worker handing one extraction request to the isolated pool.

    The DSP itself runs in the pool's execution context; this thread only
    waits for the response so the UI thread never blocks.
    """

    complete = Signal(int, object)  # generation, normalized grid
    error = Signal(int, str)  # generation, error message

    def __init__(
        self,
        generation: int,
        request: ExtractionRequest,
        pool: FeatureExtractionPool,
        parent: Any = None,
    ):
        """Initialize worker.

        Args:
            generation: Classification request id
            request: Extraction request to submit
            pool: Pool hosting the isolated context
            parent: Parent object
        """
        super().__init__(parent)
        self.generation = generation
        self.request = request
        self.pool = pool
        self.setObjectName(f"FeatureExtractionWorker-{generation}")

    def run(self) -> None:
        """Submit the request and relay the response."""
        try:
            response = self.pool.extract(self.request)
        except Exception as e:
            logging.error(f"[FeatureExtractionWorker] Worker context failed: {e}", exc_info=True)
            self.error.emit(self.generation, f"Worker context failed: {e}")
            return

        if isinstance(response, ExtractionOk):
            logging.debug(
                f"[FeatureExtractionWorker] {response.source_frames} frames -> "
                f"{response.grid.shape[0]} normalized"
            )
            self.complete.emit(self.generation, response.grid)
        else:
            self.error.emit(self.generation, response.message)
