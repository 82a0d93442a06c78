"""Audio file decoding."""

import logging
import warnings
from pathlib import Path

import numpy as np

from melgrid.errors import DecodeError
from melgrid.types import AudioClip


def is_supported(filepath: Path, supported_formats: list[str]) -> bool:
    """Check a file extension against the configured formats."""
    return filepath.suffix.lower().lstrip(".") in {f.lower() for f in supported_formats}


def decode_audio_file(filepath: Path | str, supported_formats: list[str] | None = None) -> AudioClip:
    """Decode an audio file into a mono clip at its native sample rate.

    Only the first channel of a multi-channel file is kept; channels are not
    mixed down.

    Args:
        filepath: Path to audio file
        supported_formats: Allowed extensions (without dot), None to allow any

    Returns:
        AudioClip with the first channel and the file's sample rate

    Raises:
        DecodeError: If the file is missing, unsupported, unreadable or empty
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise DecodeError(f"File not found: {filepath}")
    if supported_formats is not None and not is_supported(filepath, supported_formats):
        raise DecodeError(f"Unsupported audio format: {filepath.suffix or filepath.name}")

    import librosa

    try:
        with warnings.catch_warnings():
            # librosa falls back to audioread with a FutureWarning for some formats
            warnings.simplefilter("ignore", category=FutureWarning)
            y, sr = librosa.load(filepath, sr=None, mono=False)
    except Exception as e:
        raise DecodeError(f"Could not decode {filepath.name}: {e}") from e

    y = np.asarray(y, dtype=np.float32)
    if y.ndim > 1:
        logging.debug(f"[AudioIO] {filepath.name}: {y.shape[0]} channels, using the first")
        y = y[0]

    if len(y) == 0:
        raise DecodeError(f"Empty audio file: {filepath.name}")

    return AudioClip(samples=y, sample_rate=int(sr), source=filepath)
