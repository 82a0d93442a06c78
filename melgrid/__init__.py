"""Melgrid - Mel-spectrogram features and inference for genre classification.

This module turns a mono waveform into the fixed-shape log-mel grid a
pretrained genre classifier expects, runs the classifier and ranks its
output:

- Resampling to the classifier's sample rate (band-limited, soxr)
- 2048/1024 short-time analysis with unit-area triangular mel filters
- 10*log10(energy + 1e-6) log compression
- Pad/truncate to a fixed frame count (silence floor of -60 dB)
- Inference on a [1, frames, mel_bands, 1] tensor and stable ranking
"""

__version__ = "0.1.0"

from .engine import InferenceEngine
from .extraction import FeatureExtractionPool, process_request
from .ranker import rank_probabilities, top_k
from .spectrogram import MelSpectrogramExtractor

__all__ = [
    "FeatureExtractionPool",
    "InferenceEngine",
    "MelSpectrogramExtractor",
    "process_request",
    "rank_probabilities",
    "top_k",
]
