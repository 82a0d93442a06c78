"""Event bus between the pipeline and its front-ends."""

import logging
from collections.abc import Callable
from typing import Any


class EventBus:
    """Event bus for pub/sub."""

    def __init__(self) -> None:
        """Initialize event bus."""
        self.subscribers: dict[str, list[Callable[..., None]]] = {}

    def subscribe(self, event: str, callback: Callable[..., None]) -> None:
        """Subscribe to event."""
        self.subscribers.setdefault(event, []).append(callback)
        logging.debug(f"Subscribed to event: {event}")

    def unsubscribe(self, event: str, callback: Callable[..., None]) -> bool:
        """Unsubscribe from event.

        Args:
            event: Event name
            callback: Callback to remove

        Returns:
            True if unsubscribed, False if not found
        """
        if event not in self.subscribers:
            return False

        try:
            self.subscribers[event].remove(callback)
            logging.debug(f"Unsubscribed from event: {event}")
            return True
        except ValueError:
            return False

    def clear_all_subscribers(self) -> None:
        """Clear all subscribers from all events."""
        self.subscribers.clear()

    def emit(self, event: str, **data: Any) -> None:
        """Emit event.

        Note: Copies subscriber list before iteration so callbacks may
        subscribe/unsubscribe during emission. A failing handler is logged
        and does not stop the others.
        """
        if event not in self.subscribers:
            return

        logging.debug(f"Emitting event: {event}")
        for callback in list(self.subscribers[event]):
            try:
                callback(**data)
            except Exception as e:
                logging.error(f"Error in event handler for {event}: {e}")


class Events:
    """Standard event names.

    Each event is documented with its expected kwargs.

    Input Events:
        CLIP_LOADED: A decoded clip replaced the current one
            kwargs: duration (float) - Clip length in seconds
                    sample_rate (int) - Native sample rate
                    source (Path | str | None) - Where the clip came from
        CLASSIFIER_READY: Classifier handle loaded and warmed up
            kwargs: None

    Classification Events:
        CLASSIFICATION_STARTED: Features dispatched to the worker
            kwargs: generation (int) - Request id (latest request wins)
        CLASSIFICATION_COMPLETE: Ranking available
            kwargs: result (ClassificationResult)
        CLASSIFICATION_FAILED: A stage failed
            kwargs: error (PipelineError)

    UI Events:
        STATE_CHANGED: Pipeline state changed
            kwargs: state (str) - PipelineState.value
        RESULTS_RESET: Hide/clear the results area
            kwargs: None
        STATUS_MESSAGE: Display status message
            kwargs: message (str) - Message text
                    color (str, optional) - Hex color code (e.g., "#00FF00")
    """

    # Input events
    CLIP_LOADED = "clip_loaded"  # kwargs: duration, sample_rate, source
    CLASSIFIER_READY = "classifier_ready"  # kwargs: None

    # Classification events
    CLASSIFICATION_STARTED = "classification_started"  # kwargs: generation (int)
    CLASSIFICATION_COMPLETE = "classification_complete"  # kwargs: result
    CLASSIFICATION_FAILED = "classification_failed"  # kwargs: error

    # UI events
    STATE_CHANGED = "state_changed"  # kwargs: state (str)
    RESULTS_RESET = "results_reset"  # kwargs: None
    STATUS_MESSAGE = "status_message"  # kwargs: message (str), color (str, optional)
