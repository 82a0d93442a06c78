"""Fixed-length frame normalization."""

from __future__ import annotations

import numpy as np

from .constants import PADDING_FLOOR


def pad_or_truncate(
    grid: np.ndarray,
    frame_count: int,
    mel_bands: int,
    padding_value: float = PADDING_FLOOR,
) -> np.ndarray:
    """Force a spectrogram grid to exactly frame_count rows.

    Longer grids keep their first frame_count frames (earliest audio wins).
    Shorter grids get rows of padding_value appended, which sits on the same
    log scale as real frames (the silence floor).

    Args:
        grid: Array of shape (frames, mel_bands); frames may be 0
        frame_count: Number of rows in the output
        mel_bands: Number of columns every row must have
        padding_value: Fill value for padding rows

    Returns:
        Array of shape (frame_count, mel_bands)

    Raises:
        ValueError: If the grid is not 2-D with mel_bands columns
    """
    grid = np.asarray(grid)
    if grid.ndim == 1 and grid.size == 0:
        grid = grid.reshape(0, mel_bands)
    if grid.ndim != 2 or grid.shape[1] != mel_bands:
        raise ValueError(f"Expected a (frames, {mel_bands}) grid, got shape {grid.shape}")

    frames = grid.shape[0]
    if frames > frame_count:
        return grid[:frame_count].copy()
    if frames < frame_count:
        dtype = grid.dtype if np.issubdtype(grid.dtype, np.floating) else np.float32
        padding = np.full((frame_count - frames, mel_bands), padding_value, dtype=dtype)
        return np.concatenate([grid.astype(dtype, copy=False), padding], axis=0)
    return grid
