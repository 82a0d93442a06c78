"""Pipeline constants shared by feature extraction and inference.

These must match the values the classifier was trained with; nothing is
negotiated with the model artifact at runtime.
"""

TARGET_SAMPLE_RATE = 22050
"""Sample rate the classifier expects (Hz)."""

MEL_BANDS = 64
"""Number of mel bands per frame."""

FRAME_COUNT = 96
"""Number of time frames in a normalized grid."""

FRAME_SIZE = 2048
"""Analysis window length (samples)."""

HOP_SIZE = 1024
"""Stride between analysis windows (samples)."""

LOG_EPSILON = 1e-6
"""Floor added to mel energies before log compression."""

PADDING_FLOOR = -60.0
"""Value of padding frames: 10 * log10(LOG_EPSILON)."""

TOP_K = 5
"""Number of predictions shown in the results view."""

GTZAN_LABELS: tuple[str, ...] = (
    "blues",
    "classical",
    "country",
    "disco",
    "hiphop",
    "jazz",
    "metal",
    "pop",
    "reggae",
    "rock",
)
"""Default label set, in classifier output order."""
