"""Observable state owned by the client facade.

Consumers get read-only views: they may subscribe and read ``value`` but only
the owner calls ``set``.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class RequestState:
    loading: bool = False
    error: Optional[str] = None


class StateStream(Generic[T]):
    """Holds a current value and fans changes out to subscribers.

    New subscribers immediately receive the current value.
    """

    def __init__(self, initial: T, name: str = "state") -> None:
        self.name = name
        self._value = initial
        self._subscribers: List[Callable[[T], None]] = []
        self._lock = threading.RLock()
        self._closed = False

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: Callable[[T], None], replay: bool = True) -> Unsubscribe:
        with self._lock:
            if self._closed:
                raise RuntimeError(f"stream {self.name!r} is closed")
            self._subscribers.append(callback)
            current = self._value

        if replay:
            self._deliver(callback, current)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def set(self, value: T) -> None:
        with self._lock:
            if self._closed:
                return
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            self._deliver(callback, value)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._subscribers.clear()

    def _deliver(self, callback: Callable[[T], None], value: T) -> None:
        try:
            callback(value)
        except Exception:  # noqa: BLE001
            # One failing observer must not starve the others.
            logger.exception("Subscriber of %s raised", self.name)
