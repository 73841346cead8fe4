"""
Lazy ownership of optional heavy collaborators.

A platform pose/hit-test service or another expensive dependency is built on
demand by a factory. The handle models the lifecycle explicitly instead of
boolean flags and polling:

    UNINITIALIZED -> LOADING -> READY
                             -> FAILED
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

LOGGER = logging.getLogger(__name__)


class LoadState(Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class DependencyHandle:
    """Owns one lazily constructed dependency."""

    def __init__(self, factory: Callable[[], Any], name: str = "dependency"):
        self._factory = factory
        self.name = name
        self._state = LoadState.UNINITIALIZED
        self._instance: Any = None
        self._error: Optional[BaseException] = None
        self._lock = threading.Lock()
        self._done = threading.Event()

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is LoadState.READY

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def load(self, timeout: Optional[float] = None) -> LoadState:
        """Run the factory once; concurrent callers wait for the first.

        Returns the resulting state. Factory exceptions are captured as
        ``FAILED`` rather than propagated.
        """
        with self._lock:
            if self._state is LoadState.UNINITIALIZED:
                self._state = LoadState.LOADING
                self._done.clear()
                owner = True
            else:
                owner = False

        if not owner:
            if self._state is LoadState.LOADING:
                self._done.wait(timeout)
            return self._state

        LOGGER.info("Loading %s", self.name)
        try:
            instance = self._factory()
        except Exception as exc:
            with self._lock:
                self._error = exc
                self._state = LoadState.FAILED
            LOGGER.warning("Failed to load %s: %s", self.name, exc)
        else:
            with self._lock:
                self._instance = instance
                self._state = LoadState.READY
            LOGGER.info("%s ready", self.name)
        finally:
            self._done.set()

        return self._state

    def get(self) -> Any:
        """The instance when READY, otherwise None."""
        return self._instance if self._state is LoadState.READY else None

    def reset(self):
        """Forget the instance (or failure) so the next ``load`` retries."""
        with self._lock:
            if self._state is LoadState.LOADING:
                LOGGER.debug("Reset of %s ignored while loading", self.name)
                return
            self._instance = None
            self._error = None
            self._state = LoadState.UNINITIALIZED
            self._done.clear()
