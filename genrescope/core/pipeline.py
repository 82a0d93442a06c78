"""Classification pipeline orchestrator.

Runs in the UI thread and sequences one classification attempt:

    IDLE -> AUDIO_READY -> EXTRACTING -> CLASSIFYING -> RESULTS_READY
                                |             |
                                +--> ERROR <--+

Feature extraction is handed to a FeatureExtractionWorker, which waits on the
isolated extraction pool; inference and ranking run back in this thread.
Every load_clip/classify call starts a new generation and results from older
generations are dropped, so the latest request always wins.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any

from PySide6.QtCore import QObject, QThread, Signal, Slot

from genrescope.core.config import GenrescopeConfig
from genrescope.core.constants import WORKER_WAIT_TIMEOUT_MS, StatusColors, StatusMessages
from genrescope.core.event_bus import Events
from genrescope.core.protocols import EventBusProtocol
from genrescope.core.workers import ClassifierLoadWorker, DecodeWorker, FeatureExtractionWorker
from melgrid.classifier import Classifier
from melgrid.engine import InferenceEngine
from melgrid.errors import (
    ClassifierUnavailableError,
    DecodeError,
    ExtractionError,
    NoClipError,
    PipelineError,
)
from melgrid.extraction import ExtractionRequest, FeatureExtractionPool
from melgrid.ranker import rank_probabilities, top_k
from melgrid.types import AudioClip, ClassificationResult


class PipelineState(Enum):
    """Classification pipeline states."""

    IDLE = "idle"
    AUDIO_READY = "audio_ready"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    RESULTS_READY = "results_ready"
    ERROR = "error"


def make_extraction_pool(isolation: str = "process") -> FeatureExtractionPool:
    """Build the extraction pool for the configured isolation level."""
    if isolation == "thread":
        return FeatureExtractionPool(
            lambda: ThreadPoolExecutor(max_workers=1, thread_name_prefix="feature-extraction")
        )
    return FeatureExtractionPool()


class ClassificationPipeline(QObject):
    """Orchestrates decoding, feature extraction, inference and ranking.

    Usage:
        pipeline = ClassificationPipeline(config, event_bus=bus)
        pipeline.results_ready.connect(on_results)
        pipeline.failed.connect(on_error)
        pipeline.load_classifier()
        pipeline.load_file(path)
        ...
        pipeline.classify()
    """

    # Signals
    state_changed = Signal(str)  # PipelineState.value
    clip_loaded = Signal(object)  # AudioClip
    classifier_ready = Signal()
    results_ready = Signal(object)  # ClassificationResult
    failed = Signal(object)  # PipelineError

    def __init__(
        self,
        config: GenrescopeConfig,
        event_bus: EventBusProtocol | None = None,
        pool: FeatureExtractionPool | None = None,
        parent: QObject | None = None,
    ):
        """Initialize pipeline.

        Args:
            config: Application configuration
            event_bus: Optional bus for status/result events
            pool: Extraction pool (defaults to one built from config.worker)
            parent: Parent QObject
        """
        super().__init__(parent)
        self.config = config
        self.event_bus = event_bus
        self.labels = tuple(config.model.labels)
        self.pool = pool or make_extraction_pool(config.worker.isolation)
        self.engine = InferenceEngine(
            classifier=None,
            frame_count=config.features.frame_count,
            mel_bands=config.features.mel_bands,
            labels=self.labels,
        )

        self._state = PipelineState.IDLE
        self._clip: AudioClip | None = None
        self._result: ClassificationResult | None = None
        self._last_error: PipelineError | None = None
        self._classifier_error: str | None = None

        # Request ids: a result is only applied if its id is still current
        self._generation = 0
        self._load_generation = 0
        self._request_start_time = 0.0

        self._workers: list[QThread] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def clip(self) -> AudioClip | None:
        return self._clip

    @property
    def result(self) -> ClassificationResult | None:
        return self._result

    @property
    def last_error(self) -> PipelineError | None:
        return self._last_error

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def classifier_loaded(self) -> bool:
        return self.engine.classifier is not None

    @property
    def is_busy(self) -> bool:
        return self._state in (PipelineState.EXTRACTING, PipelineState.CLASSIFYING)

    @property
    def active_workers(self) -> int:
        """Worker threads started and not yet reaped."""
        return len(self._workers)

    def _set_state(self, state: PipelineState) -> None:
        if state == self._state:
            return
        logging.debug(f"[Pipeline] {self._state.value} -> {state.value}")
        self._state = state
        self.state_changed.emit(state.value)
        self._emit(Events.STATE_CHANGED, state=state.value)

    def _emit(self, event: str, **data: Any) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(event, **data)

    def _status(self, message: str, color: str = StatusColors.SUCCESS) -> None:
        self._emit(Events.STATUS_MESSAGE, message=message, color=color)

    # ------------------------------------------------------------------
    # Classifier
    # ------------------------------------------------------------------

    def set_classifier(self, classifier: Classifier) -> None:
        """Install the classifier handle (once; it is read-only afterwards).

        Raises:
            RuntimeError: If a classifier is already installed
        """
        if self.engine.classifier is not None:
            raise RuntimeError("Classifier already loaded; the handle is read-only")

        self.engine.classifier = classifier
        self._classifier_error = None
        logging.info("[Pipeline] Classifier ready")

        self.classifier_ready.emit()
        self._emit(Events.CLASSIFIER_READY)
        self._status(StatusMessages.MODEL_READY)

    def load_classifier(self, model_path: Path | str | None = None) -> bool:
        """Load the classifier in the background.

        Args:
            model_path: Exported model, defaults to config.model.path

        Returns:
            True if loading started, False if a classifier is already loaded
        """
        if self.engine.classifier is not None:
            logging.warning("[Pipeline] Classifier already loaded, ignoring load request")
            return False

        path = Path(model_path) if model_path is not None else self.config.model.path
        logging.info(f"[Pipeline] Loading classifier from {path}")

        worker = ClassifierLoadWorker(
            model_path=path,
            device=self.config.model.device,
            frame_count=self.config.features.frame_count,
            mel_bands=self.config.features.mel_bands,
            label_count=len(self.labels),
            warmup=self.config.model.warmup,
        )
        worker.complete.connect(self._on_classifier_loaded)
        worker.error.connect(self._on_classifier_error)
        self._start_worker(worker)
        return True

    @Slot(object)
    def _on_classifier_loaded(self, classifier: Classifier) -> None:
        if self.engine.classifier is not None:
            logging.debug("[Pipeline] Dropping duplicate classifier load")
            return
        self.set_classifier(classifier)

    @Slot(str)
    def _on_classifier_error(self, message: str) -> None:
        self._classifier_error = message
        error = ClassifierUnavailableError(message)
        logging.error(f"[Pipeline] Classifier unavailable: {message}")
        self.failed.emit(error)
        self._status(StatusMessages.MODEL_FAILED, StatusColors.ERROR)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def load_file(self, filepath: Path | str) -> int:
        """Decode an audio file in the background.

        The latest call wins: a file that finishes decoding after a newer
        load_file or load_clip call is discarded.

        Returns:
            Load request id
        """
        self._load_generation += 1
        generation = self._load_generation

        self._emit(Events.RESULTS_RESET)
        self._status(StatusMessages.LOADING_AUDIO, StatusColors.INFO)
        worker = DecodeWorker(generation, Path(filepath), self.config.audio.supported_formats)
        worker.complete.connect(self._on_clip_decoded)
        worker.error.connect(self._on_decode_error)
        self._start_worker(worker)
        return generation

    @Slot(int, object)
    def _on_clip_decoded(self, generation: int, clip: AudioClip) -> None:
        if generation != self._load_generation:
            logging.debug(f"[Pipeline] Dropping stale decode #{generation}")
            return
        self.load_clip(clip)

    @Slot(int, str)
    def _on_decode_error(self, generation: int, message: str) -> None:
        if generation != self._load_generation:
            return
        # State is left as it was: the previous clip (if any) stays usable
        self.failed.emit(DecodeError(message))
        self._status(StatusMessages.DECODE_FAILED, StatusColors.ERROR)

    def load_clip(self, clip: AudioClip) -> None:
        """Make clip the current clip, superseding any in-flight request."""
        if self.is_busy:
            logging.info(f"[Pipeline] New clip supersedes request #{self._generation}")
        self._generation += 1
        # A decode still running for an earlier load_file must not replace this clip
        self._load_generation += 1
        self._clip = clip
        self._result = None
        self._last_error = None

        logging.info(
            f"[Pipeline] Clip loaded: {clip.duration:.1f}s @ {clip.sample_rate} Hz"
        )
        self._emit(Events.RESULTS_RESET)
        self._set_state(PipelineState.AUDIO_READY)
        self.clip_loaded.emit(clip)
        self._emit(
            Events.CLIP_LOADED,
            duration=clip.duration,
            sample_rate=clip.sample_rate,
            source=clip.source,
        )
        self._status(StatusMessages.AUDIO_READY)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self) -> int:
        """Start classifying the current clip.

        Returns:
            Request id of the new attempt

        Raises:
            ClassifierUnavailableError: If no classifier is loaded
            NoClipError: If no clip is loaded
        """
        if self.engine.classifier is None:
            self._status(StatusMessages.NOT_READY, StatusColors.ERROR)
            detail = f" ({self._classifier_error})" if self._classifier_error else ""
            raise ClassifierUnavailableError(f"Classifier is not loaded{detail}")

        if self._clip is None:
            self._status(StatusMessages.NOT_READY, StatusColors.ERROR)
            raise NoClipError("No audio clip loaded")

        if self.is_busy:
            logging.info(f"[Pipeline] Superseding request #{self._generation}")

        self._generation += 1
        generation = self._generation

        features = self.config.features
        request = ExtractionRequest(
            samples=self._clip.samples.copy(),
            source_rate=self._clip.sample_rate,
            target_rate=features.target_sample_rate,
            mel_bands=features.mel_bands,
            frame_count=features.frame_count,
            frame_size=features.frame_size,
            hop_size=features.hop_size,
            log_epsilon=features.log_epsilon,
            padding_floor=features.padding_floor,
        )

        self._result = None
        self._last_error = None
        self._request_start_time = time.time()
        logging.info(f"[Pipeline] #{generation} Extracting features...")

        self._emit(Events.RESULTS_RESET)
        self._set_state(PipelineState.EXTRACTING)
        self._emit(Events.CLASSIFICATION_STARTED, generation=generation)
        self._status(StatusMessages.EXTRACTING)

        worker = FeatureExtractionWorker(generation, request, self.pool)
        worker.complete.connect(self._on_features_ready)
        worker.error.connect(self._on_extraction_error)
        self._start_worker(worker)
        return generation

    @Slot(int, object)
    def _on_features_ready(self, generation: int, grid: Any) -> None:
        if generation != self._generation:
            logging.debug(f"[Pipeline] Dropping stale features #{generation}")
            return

        self._set_state(PipelineState.CLASSIFYING)
        self._status(StatusMessages.CLASSIFYING)

        try:
            probabilities = self.engine.predict(grid)
            ranking = rank_probabilities(probabilities, self.labels)
        except PipelineError as e:
            self._fail(e, StatusMessages.INFERENCE_FAILED)
            return

        clip = self._clip
        result = ClassificationResult(
            ranking=ranking,
            top=top_k(ranking, self.config.results.top_k),
            duration=clip.duration if clip is not None else 0.0,
            generation=generation,
            source=clip.source if clip is not None else None,
        )
        self._result = result

        duration = time.time() - self._request_start_time
        logging.info(
            f"[Pipeline] #{generation} ✓ {result.predicted_genre} "
            f"({result.confidence:.1f}%, {duration:.1f}s)"
        )

        self._set_state(PipelineState.RESULTS_READY)
        self.results_ready.emit(result)
        self._emit(Events.CLASSIFICATION_COMPLETE, result=result)
        self._status(StatusMessages.COMPLETE)

    @Slot(int, str)
    def _on_extraction_error(self, generation: int, message: str) -> None:
        if generation != self._generation:
            logging.debug(f"[Pipeline] Dropping stale extraction error #{generation}")
            return
        self._fail(ExtractionError(message), StatusMessages.EXTRACTION_FAILED)

    def _fail(self, error: PipelineError, status_message: str) -> None:
        """Move to ERROR and report; the results area is reset, never partial."""
        self._last_error = error
        self._result = None
        logging.error(f"[Pipeline] #{self._generation} ✗ {type(error).__name__}: {error}")

        self._set_state(PipelineState.ERROR)
        self._emit(Events.RESULTS_RESET)
        self.failed.emit(error)
        self._emit(Events.CLASSIFICATION_FAILED, error=error)
        self._status(status_message, StatusColors.ERROR)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _start_worker(self, worker: QThread) -> None:
        self._workers.append(worker)
        worker.finished.connect(self._reap_worker)
        worker.start()

    @Slot()
    def _reap_worker(self) -> None:
        """Drop the reference to a worker whose thread has ended."""
        worker = self.sender()
        if worker in self._workers:
            # finished is emitted just before run() returns
            worker.wait()
            self._workers.remove(worker)

    def shutdown(self) -> None:
        """Wait for running workers and stop the extraction pool."""
        for worker in self._workers:
            if not worker.wait(WORKER_WAIT_TIMEOUT_MS):
                logging.warning(f"[Pipeline] {worker.objectName()} still running at shutdown")
        self._workers = [w for w in self._workers if not w.isFinished()]
        self.pool.shutdown()
        logging.info("[Pipeline] Shut down")
