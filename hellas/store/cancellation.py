"""
Hellas Store - Cooperative Cancellation

A CancelToken is created per operation and passed explicitly through
the fetcher, download service and reconciler. Callers check it at
phase boundaries; in-flight resources (HTTP responses) register a
callback so a cancel request tears them down immediately.

Destructive filesystem steps run inside ``token.shield()``: a cancel
request arriving during the shielded block is recorded but neither
checkpoints nor callbacks act on it until the block exits.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Generator, List, Optional

from .errors import CancelledError

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], None]


class CancelToken:
    """Thread-safe cooperative cancellation signal."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[CancelCallback] = []
        self._shield_depth = 0
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        """True once cancel() was requested (even if currently shielded)."""
        return self._event.is_set()

    @property
    def shielded(self) -> bool:
        return self._shield_depth > 0

    def cancel(self, reason: str = "Operation cancelled.") -> bool:
        """
        Request cancellation.

        Returns:
            False if cancellation had already been requested.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            if self._shield_depth:
                logger.info("[CancelToken] Cancel deferred until shielded step completes")
                return True
            callbacks = list(self._callbacks)
        self._fire(callbacks)
        return True

    def check(self, phase: str = "") -> None:
        """Raise CancelledError if cancellation was requested and not shielded."""
        if self._event.is_set() and not self._shield_depth:
            raise CancelledError(self.reason or "Operation cancelled.", phase=phase)

    def on_cancel(self, callback: CancelCallback) -> Callable[[], None]:
        """
        Register a teardown callback.

        Fires immediately if cancellation is already requested (and the
        token is not shielded). Returns a function that unregisters it.
        """
        with self._lock:
            fire_now = self._event.is_set() and not self._shield_depth
            if not fire_now:
                self._callbacks.append(callback)
        if fire_now:
            self._fire([callback])

        def unregister() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unregister

    @contextmanager
    def shield(self) -> Generator[None, None, None]:
        """Defer cancellation for the duration of a destructive step."""
        with self._lock:
            self._shield_depth += 1
        try:
            yield
        finally:
            with self._lock:
                self._shield_depth -= 1
                release = self._shield_depth == 0 and self._event.is_set()
                callbacks = list(self._callbacks) if release else []
            if callbacks:
                self._fire(callbacks)

    @staticmethod
    def _fire(callbacks: List[CancelCallback]) -> None:
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # Teardown of an already-broken resource must not mask the cancel
                logger.debug("[CancelToken] Cancel callback failed: %s", e)
