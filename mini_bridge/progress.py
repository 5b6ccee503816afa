# mini_bridge/progress.py - cooperative cancellation and progress reporting

import threading
from typing import Callable, Optional

from .errors import CancelledError

# (phase, percent complete 0..100, optional message)
ProgressCallback = Callable[[str, float, Optional[str]], None]


class CancelToken:
    """
    Cancellation flag shared between a caller and a running analysis.

    The analysis calls check() between independent work units (stages,
    rating pairs); a solve already in progress always completes.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, *, stage: str = None, section: float = None, vehicle: str = None) -> None:
        if self._event.is_set():
            raise CancelledError("Analysis cancelled", stage=stage, section=section, vehicle=vehicle)


def report(callback: Optional[ProgressCallback], phase: str, percent: float,
           message: str = None) -> None:
    if callback is not None:
        callback(phase, max(0.0, min(100.0, float(percent))), message)
