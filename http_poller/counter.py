# Counts messages the Pulsar cluster has acknowledged and reports the count
# on a fixed timer, independent of the poll cadence.

import asyncio
import logging
import threading

log = logging.getLogger(__name__)


class ForwardCounter:
    """
    Thread-safe counter of acknowledged messages.

    Pulsar runs send callbacks on its own threads while the reporter resets
    the value from the event loop, so both go through one lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    def reset(self) -> int:
        """Return the current value and set it to zero in one step."""
        with self._lock:
            value, self._value = self._value, 0
            return value


async def report_forever(counter: ForwardCounter, interval_s: float) -> None:
    while True:
        await asyncio.sleep(interval_s)
        log.info("%d messages forwarded to Pulsar", counter.reset())
