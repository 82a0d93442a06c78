"""Ranking of classifier scores."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from .constants import TOP_K
from .errors import LabelMismatchError
from .types import RankedResult, TopPrediction


def rank_probabilities(
    probabilities: Sequence[float] | np.ndarray, labels: Sequence[str]
) -> list[RankedResult]:
    """Pair scores with labels and sort by descending score.

    The sort is stable, so equal scores keep their label-set order.

    Args:
        probabilities: One score per label, in label-set order
        labels: Label set

    Returns:
        List of RankedResult, best first

    Raises:
        LabelMismatchError: If the lengths differ
        ValueError: If a score is NaN or infinite
    """
    scores = np.asarray(probabilities, dtype=np.float64).reshape(-1)
    if len(scores) != len(labels):
        raise LabelMismatchError(f"Got {len(scores)} scores for {len(labels)} labels")
    if not np.all(np.isfinite(scores)):
        raise ValueError("Scores must be finite to be ranked")

    results = [
        RankedResult(label=label, score=float(score), index=idx)
        for idx, (label, score) in enumerate(zip(labels, scores))
    ]
    return sorted(results, key=lambda r: -r.score)


def top_k(ranking: Sequence[RankedResult], k: int = TOP_K) -> list[TopPrediction]:
    """Take the first k entries of a ranking as display percentages."""
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")
    return [TopPrediction(label=r.label, percent=r.percent) for r in ranking[:k]]
