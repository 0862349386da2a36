"""
Reactive State Store

Explicit, injectable replacement for ambient reactive signals. The page shell
owns one store per piece of mutable UI state (pagination, search criteria,
filter selections) and hands them to the components that read and write it.
"""

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class Store(Generic[T]):
    """
    Holds one value and notifies subscribers when it changes.

    Example:
        >>> page = Store(0)
        >>> unsubscribe = page.subscribe(lambda v: print("page", v))
        >>> page.set(2)
        page 2
        >>> unsubscribe()
    """

    def __init__(self, initial: T):
        self._value = initial
        self._listeners: list[Listener[T]] = []

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Replace the value and notify subscribers if it changed."""
        if value == self._value:
            return
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                # A broken subscriber must not block the others
                logger.exception("Store subscriber raised")

    def update(self, fn: Callable[[T], T]) -> None:
        """Set the value to fn(current value)."""
        self.set(fn(self._value))

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """
        Register a listener called with each new value.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
