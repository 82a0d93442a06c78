"""Shared constants for the Genrescope application."""


class StatusColors:
    """Centralized status message colors (hex)."""

    SUCCESS = "#00FF00"
    ERROR = "#FF0000"
    WARNING = "#FFA500"
    INFO = "#4A90E2"


class StatusMessages:
    """Status texts shown to the user at each pipeline step."""

    LOADING_AUDIO = "Loading audio file..."
    AUDIO_READY = "Audio loaded. Ready to classify."
    MODEL_READY = "Model loaded. Select a file or record."
    EXTRACTING = "Extracting features..."
    CLASSIFYING = "Classifying..."
    COMPLETE = "Classification complete."
    NOT_READY = "Error: Audio or model not ready."
    DECODE_FAILED = "Error: Could not decode audio file."
    MODEL_FAILED = "Error: Could not load the ML model."
    EXTRACTION_FAILED = "Feature extraction failed."
    INFERENCE_FAILED = "Inference failed."


WORKER_WAIT_TIMEOUT_MS = 5000
"""Timeout for waiting on worker threads during shutdown."""
