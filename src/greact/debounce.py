"""Debounced trigger: collapse bursts of events into one delayed action."""

import logging
from collections.abc import Callable
from threading import Lock, Timer

logger = logging.getLogger(__name__)


class DebouncedTrigger:
    """Single-slot debounce timer.

    ``schedule()`` arms a timer for the quiet period. Re-arming before it
    elapses replaces the deadline and the pending action, so a burst of N calls
    fires the last action exactly once, ``delay_ms`` after the last call.

    Safe to call from any thread. The action runs on the timer thread.
    """

    def __init__(self, delay_ms: int = 200, name: str = ""):
        """Initialize trigger.

        Args:
            delay_ms: Quiet period in milliseconds
            name: Label used in log messages
        """
        self.delay_ms = delay_ms
        self.name = name or "debounce"
        self._lock = Lock()
        self._timer: Timer | None = None
        self._action: Callable[[], None] | None = None
        # Bumped on every arm/cancel; a timer only fires if its generation is current
        self._generation = 0

    @property
    def pending(self) -> bool:
        """True while an action is armed and has not fired yet."""
        with self._lock:
            return self._timer is not None

    def schedule(self, action: Callable[[], None]) -> None:
        """Arm (or re-arm) the timer for ``action``.

        Args:
            action: Callable fired once the quiet period elapses
        """
        with self._lock:
            if self._timer:
                self._timer.cancel()

            self._generation += 1
            self._action = action
            self._timer = Timer(self.delay_ms / 1000.0, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        """Drop the pending action, if any."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
            self._timer = None
            self._action = None
            self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            # Replaced or cancelled while this timer thread was waking up
            if generation != self._generation:
                return
            action = self._action
            self._timer = None
            self._action = None

        if action is None:
            return

        try:
            action()
        except Exception as e:
            logger.exception(f"Debounced action '{self.name}' failed: {e}")
