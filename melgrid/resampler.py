"""Sample rate conversion to the classifier's target rate."""

from __future__ import annotations

import math
from numbers import Real

import numpy as np

from .errors import InvalidRateError


def validate_rate(rate: object, name: str = "sample rate") -> float:
    """Check that a rate is a positive, finite number.

    Args:
        rate: Value to check
        name: Label used in the error message

    Returns:
        The rate as a float

    Raises:
        InvalidRateError: If the rate is not a positive number
    """
    if isinstance(rate, bool) or not isinstance(rate, Real):
        raise InvalidRateError(f"Invalid {name}: {rate!r} is not a number")
    value = float(rate)
    if not math.isfinite(value) or value <= 0:
        raise InvalidRateError(f"Invalid {name}: {rate!r} must be positive")
    return value


def resample(samples: np.ndarray, source_rate: float, target_rate: float) -> np.ndarray:
    """Resample a mono signal from source_rate to target_rate.

    Equal rates are an identity: the input is returned as-is so no
    resampling artifacts are introduced.

    Args:
        samples: Mono audio time series
        source_rate: Rate of `samples` (Hz)
        target_rate: Desired rate (Hz)

    Returns:
        Signal at target_rate, length ceil(len(samples) * target / source)

    Raises:
        InvalidRateError: If either rate is not a positive number
    """
    src = validate_rate(source_rate, "source rate")
    dst = validate_rate(target_rate, "target rate")

    if src == dst:
        return samples

    y = np.asarray(samples, dtype=np.float32)
    if y.size == 0:
        return np.zeros(0, dtype=np.float32)

    import librosa

    return librosa.resample(y, orig_sr=src, target_sr=dst, res_type="soxr_hq")
