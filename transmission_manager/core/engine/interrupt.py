"""
SIGINT / SIGTERM handling for runs.

While a run is active, Ctrl-C (or a service manager's SIGTERM) does not
raise ``KeyboardInterrupt`` or kill the process; it sets an event the
engine checks between actions, so the action in progress is allowed to
finish (or fail on its own) first.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

CANCEL_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextmanager
def signals_cancel(event: threading.Event) -> Iterator[threading.Event]:
    """Route SIGINT and SIGTERM to ``event.set()`` for the duration of the block."""
    if threading.current_thread() is not threading.main_thread():
        # Signal handlers can only be installed from the main thread
        yield event
        return

    def _handler(signum, frame):
        if not event.is_set():
            logger.warning("%s received — stopping after the current action", signal.Signals(signum).name)
        event.set()

    previous = {signum: signal.signal(signum, _handler) for signum in CANCEL_SIGNALS}
    try:
        yield event
    finally:
        for signum, handler in previous.items():
            # None means a handler installed outside Python
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
