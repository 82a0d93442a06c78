"""Exceptions raised by the feature and inference pipeline."""


class PipelineError(Exception):
    """Base class for every genre classification pipeline failure."""

    pass


class DecodeError(PipelineError):
    """Raised when an audio clip cannot be decoded."""

    pass


class InvalidRateError(PipelineError):
    """Raised when a sample rate is not a positive number."""

    pass


class ExtractionError(PipelineError):
    """Raised when feature extraction fails inside the worker context."""

    pass


class ClassifierUnavailableError(PipelineError):
    """Raised when the classifier was never loaded or failed to load."""

    pass


class InferenceError(PipelineError):
    """Raised when the classifier's predict call fails."""

    pass


class GridShapeError(InferenceError):
    """Raised when a feature grid does not match the classifier input shape."""

    pass


class LabelMismatchError(InferenceError):
    """Raised when a probability vector and the label set differ in length."""

    pass


class NoClipError(PipelineError):
    """Raised when classification is requested before any clip is loaded."""

    pass
