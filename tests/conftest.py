"""Pytest configuration and fixtures."""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
from PySide6.QtCore import QCoreApplication

from tests.stubs import StubClassifier


@pytest.fixture(scope="session")
def qapp():
    """Create QCoreApplication instance for tests (no widgets needed)."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def test_config(tmp_path):
    """Provide test configuration (thread isolation, log file in tmp)."""
    from genrescope.core.config import GenrescopeConfig, LoggingConfig, WorkerConfig

    return GenrescopeConfig(
        worker=WorkerConfig(isolation="thread"),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )


@pytest.fixture
def thread_pool():
    """Provide an extraction pool backed by a single thread."""
    from melgrid.extraction import FeatureExtractionPool

    pool = FeatureExtractionPool(lambda: ThreadPoolExecutor(max_workers=1))
    yield pool
    pool.shutdown()


@pytest.fixture
def rock_scores():
    """Scores favouring the last GTZAN label (rock) at 0.9."""
    return [0.1] * 9 + [0.9]


@pytest.fixture
def stub_classifier(rock_scores):
    """Provide a stub classifier over the ten GTZAN labels."""
    return StubClassifier(rock_scores)


def sine_wave(duration_sec: float, sr: int, freq: float = 440.0) -> np.ndarray:
    """Generate a sine wave as a float32 array."""
    t = np.arange(int(round(sr * duration_sec))) / sr
    return (np.sin(2 * np.pi * freq * t) * 0.5).astype(np.float32)


@pytest.fixture
def make_sine():
    """Provide the sine wave generator."""
    return sine_wave
