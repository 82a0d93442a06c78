"""Protocol definitions for collaborators of the pipeline.

Using Protocol (structural subtyping) lets UI front-ends and tests plug in
their own event sinks without depending on the concrete classes.
"""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class EventBusProtocol(Protocol):
    """Protocol for event bus operations."""

    def emit(self, event: str, **data: Any) -> None: ...
    def subscribe(self, event: str, callback: Callable[..., None]) -> None: ...
    def unsubscribe(self, event: str, callback: Callable[..., None]) -> bool: ...
