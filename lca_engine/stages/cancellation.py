"""Cooperative cancellation for a scenario evaluation."""

import threading

from lca_engine.errors import ScenarioCancelled


class CancellationToken:
    """
    Thread-safe cancellation flag shared by one scenario evaluation.

    The resolver checks it before calling the estimation capability and the
    sensitivity engine checks it between trials.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            suffix = f" ({where})" if where else ""
            raise ScenarioCancelled(f"Scenario evaluation cancelled{suffix}")
