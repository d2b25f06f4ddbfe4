"""A small synchronous signal/slot mechanism used to notify observers."""

from __future__ import annotations

from typing import Any, Callable, List

Handler = Callable[..., Any]


class Signal:
    """A list of handlers that are called, in connection order, on emit."""

    def __init__(self) -> None:
        self._handlers: List[Handler] = []

    def connect(self, handler: Handler) -> Handler:
        """Connect ``handler``; it may be connected more than once.

        Returns the handler so that the method can be used as a decorator.
        """
        if not callable(handler):
            raise TypeError("signal handler must be callable")
        self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Handler) -> bool:
        """Remove every connection of ``handler``; return whether any existed."""
        remaining = [h for h in self._handlers if h != handler]
        removed = len(remaining) != len(self._handlers)
        self._handlers = remaining
        return removed

    def emit(self, *args: Any) -> None:
        """Call every connected handler with ``args``."""
        for handler in list(self._handlers):
            handler(*args)

    def __len__(self) -> int:
        return len(self._handlers)

    def __bool__(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Signal(handlers={len(self._handlers)})"