"""Feature extraction across an isolated worker boundary.

The UI-facing side builds an ExtractionRequest and submits it to a
FeatureExtractionPool. The worker side (process_request) runs
resample -> mel spectrogram -> pad/truncate and always answers with a
tagged response: ExtractionOk (status "ok") or ExtractionFailed
(status "error"). Requests and responses are plain picklable data, so
nothing is shared between the two contexts.
"""

from __future__ import annotations

import logging
import multiprocessing
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ProcessPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

import numpy as np

from .constants import (
    FRAME_COUNT,
    FRAME_SIZE,
    HOP_SIZE,
    LOG_EPSILON,
    MEL_BANDS,
    PADDING_FLOOR,
    TARGET_SAMPLE_RATE,
)
from .errors import ExtractionError
from .normalizer import pad_or_truncate
from .resampler import resample
from .spectrogram import MelSpectrogramExtractor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionRequest:
    """Everything the worker needs for one clip."""

    samples: np.ndarray
    source_rate: int
    target_rate: int = TARGET_SAMPLE_RATE
    mel_bands: int = MEL_BANDS
    frame_count: int = FRAME_COUNT
    frame_size: int = FRAME_SIZE
    hop_size: int = HOP_SIZE
    log_epsilon: float = LOG_EPSILON
    padding_floor: float = PADDING_FLOOR


@dataclass(frozen=True)
class ExtractionOk:
    """Successful extraction: a normalized (frame_count, mel_bands) grid."""

    grid: np.ndarray
    source_frames: int = 0
    status: Literal["ok"] = "ok"


@dataclass(frozen=True)
class ExtractionFailed:
    """Failed extraction, reported instead of raised."""

    message: str
    status: Literal["error"] = "error"


ExtractionResponse = ExtractionOk | ExtractionFailed


@lru_cache(maxsize=4)
def _get_extractor(
    sample_rate: int, frame_size: int, hop_size: int, n_mels: int, log_epsilon: float
) -> MelSpectrogramExtractor:
    """Per-process extractor cache (filter banks are built once per worker)."""
    return MelSpectrogramExtractor(
        sample_rate=sample_rate,
        frame_size=frame_size,
        hop_size=hop_size,
        n_mels=n_mels,
        log_epsilon=log_epsilon,
    )


def extract_features(request: ExtractionRequest) -> tuple[np.ndarray, int]:
    """Run the DSP chain for one request.

    Returns:
        Tuple of (normalized grid, number of frames before normalization)

    Raises:
        InvalidRateError: If a rate is not a positive number
        ExtractionError: If the samples are not a finite mono buffer
    """
    samples = np.asarray(request.samples)
    if samples.ndim != 1:
        raise ExtractionError(f"Expected a mono signal, got shape {samples.shape}")

    resampled = resample(samples, request.source_rate, request.target_rate)

    extractor = _get_extractor(
        int(request.target_rate),
        request.frame_size,
        request.hop_size,
        request.mel_bands,
        request.log_epsilon,
    )
    grid = extractor.extract(resampled)

    normalized = pad_or_truncate(
        grid, request.frame_count, request.mel_bands, padding_value=request.padding_floor
    )
    return normalized, grid.shape[0]


def process_request(request: ExtractionRequest) -> ExtractionResponse:
    """Worker-side entry point; never raises.

    Args:
        request: Extraction request received from the UI context

    Returns:
        ExtractionOk with the grid, or ExtractionFailed with a message
    """
    try:
        grid, source_frames = extract_features(request)
    except Exception as e:
        return ExtractionFailed(message=f"{type(e).__name__}: {e}")
    return ExtractionOk(grid=grid, source_frames=source_frames)


def _default_executor() -> Executor:
    # The parent runs Qt threads, so the worker is spawned rather than forked
    return ProcessPoolExecutor(max_workers=1, mp_context=multiprocessing.get_context("spawn"))


class FeatureExtractionPool:
    """Owns the isolated execution context used for feature extraction.

    A single-worker ProcessPoolExecutor by default: requests are handled one
    at a time, in submission order, with inputs and outputs pickled across
    the process boundary. The executor is created on first use.

    Usage:
        with FeatureExtractionPool() as pool:
            response = pool.extract(ExtractionRequest(samples, 44100))
    """

    def __init__(self, executor_factory: Callable[[], Executor] | None = None):
        """Initialize pool.

        Args:
            executor_factory: Builds the executor on first use
                              (defaults to a one-process ProcessPoolExecutor)
        """
        self._executor_factory = executor_factory or _default_executor
        self._executor: Executor | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def started(self) -> bool:
        return self._executor is not None

    def submit(self, request: ExtractionRequest) -> Future:
        """Queue a request; the future resolves to an ExtractionResponse."""
        with self._lock:
            if self._closed:
                raise RuntimeError("FeatureExtractionPool is shut down")
            if self._executor is None:
                self._executor = self._executor_factory()
                logger.debug("[FeatureExtractionPool] Started %s", type(self._executor).__name__)
            return self._executor.submit(process_request, request)

    def extract(self, request: ExtractionRequest) -> ExtractionResponse:
        """Submit a request and wait for its response."""
        return self.submit(request).result()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the executor, dropping requests that have not started."""
        with self._lock:
            self._closed = True
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)
            logger.debug("[FeatureExtractionPool] Shut down")

    def __enter__(self) -> "FeatureExtractionPool":
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()
