"""Log-compressed mel spectrogram extraction.

The grid layout is (frames, mel_bands): one row per analysis frame, which is
the orientation the classifier consumes. Frames are cut without centering or
padding, so a signal of n samples gives floor((n - frame_size) / hop_size) + 1
frames and a signal shorter than one frame gives none.
"""

from __future__ import annotations

import numpy as np

from .constants import FRAME_SIZE, HOP_SIZE, LOG_EPSILON, MEL_BANDS, TARGET_SAMPLE_RATE
from .errors import ExtractionError


def log_compress(energy: np.ndarray, epsilon: float = LOG_EPSILON) -> np.ndarray:
    """Convert band energies to 10 * log10(energy + epsilon)."""
    return 10.0 * np.log10(np.asarray(energy, dtype=np.float64) + epsilon)


class MelSpectrogramExtractor:
    """Compute mel-band energies and their log compression.

    The algorithm:
    1. Slice the signal into frames of frame_size samples every hop_size samples
    2. Apply a periodic Hann window and take the power spectrum
    3. Project onto triangular HTK-mel filters, each scaled to unit area
    4. Log-compress with a numerical floor so silence maps to a finite value
    """

    def __init__(
        self,
        sample_rate: int = TARGET_SAMPLE_RATE,
        frame_size: int = FRAME_SIZE,
        hop_size: int = HOP_SIZE,
        n_mels: int = MEL_BANDS,
        fmin: float = 0.0,
        fmax: float | None = None,
        log_epsilon: float = LOG_EPSILON,
    ):
        """Initialize extractor and build the mel filter bank.

        Args:
            sample_rate: Rate of the signals this extractor receives (Hz)
            frame_size: Analysis window length in samples
            hop_size: Stride between windows in samples
            n_mels: Number of mel bands
            fmin: Lowest filter edge (Hz)
            fmax: Highest filter edge (Hz), defaults to sample_rate / 2
            log_epsilon: Floor added before log compression
        """
        import librosa

        if frame_size <= 0 or hop_size <= 0:
            raise ValueError(f"frame_size and hop_size must be positive ({frame_size}, {hop_size})")

        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.hop_size = hop_size
        self.n_mels = n_mels
        self.fmin = fmin
        self.fmax = fmax if fmax is not None else sample_rate / 2
        self.log_epsilon = log_epsilon

        # Triangles on the HTK mel scale, then each scaled so its weights sum to 1
        weights = librosa.filters.mel(
            sr=sample_rate,
            n_fft=frame_size,
            n_mels=n_mels,
            fmin=fmin,
            fmax=self.fmax,
            htk=True,
            norm=None,
        )
        areas = weights.sum(axis=1, keepdims=True)
        areas[areas == 0] = 1.0
        self.mel_basis = (weights / areas).astype(np.float64)  # (n_mels, 1 + frame_size // 2)

        self.window = librosa.filters.get_window("hann", frame_size, fftbins=True)

    def frame_count(self, n_samples: int) -> int:
        """Number of complete analysis frames in a signal of n_samples."""
        if n_samples < self.frame_size:
            return 0
        return (n_samples - self.frame_size) // self.hop_size + 1

    def power_spectrum(self, samples: np.ndarray) -> np.ndarray:
        """Windowed power spectrum, shape (frames, 1 + frame_size // 2)."""
        import librosa

        y = self._validate(samples)
        if self.frame_count(len(y)) == 0:
            return np.zeros((0, 1 + self.frame_size // 2), dtype=np.float64)

        frames = librosa.util.frame(
            y, frame_length=self.frame_size, hop_length=self.hop_size, axis=0
        )
        spectrum = np.fft.rfft(frames * self.window, axis=1)
        return np.abs(spectrum) ** 2

    def mel_energies(self, samples: np.ndarray) -> np.ndarray:
        """Mel-band energies, shape (frames, n_mels)."""
        return self.power_spectrum(samples) @ self.mel_basis.T

    def extract(self, samples: np.ndarray) -> np.ndarray:
        """Log-compressed mel spectrogram grid.

        Args:
            samples: Mono signal at self.sample_rate

        Returns:
            float32 array of shape (frames, n_mels); frames may be 0

        Raises:
            ExtractionError: If the signal is not a finite 1-D buffer
        """
        energies = self.mel_energies(samples)
        return log_compress(energies, self.log_epsilon).astype(np.float32)

    def _validate(self, samples: np.ndarray) -> np.ndarray:
        y = np.asarray(samples, dtype=np.float64)
        if y.ndim != 1:
            raise ExtractionError(f"Expected a mono signal, got shape {y.shape}")
        if not np.all(np.isfinite(y)):
            raise ExtractionError("Audio buffer contains non-finite samples")
        return y
