"""Background availability polling for the model gateway."""

from __future__ import annotations

import logging
import threading

from fishbowl.gateway.client import ModelGateway

logger = logging.getLogger(__name__)


class AvailabilityMonitor:
    """Daemon thread that keeps the gateway's availability flags fresh.

    Each poll checks reachability first and then ``/api/tags``; the two
    results gate new requests independently of any request's own retries.
    """

    def __init__(self, gateway: ModelGateway, interval: float = 60.0) -> None:
        self._gateway = gateway
        self._interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> bool:
        if not self._gateway.check_network():
            return False
        return self._gateway.probe()

    def _run(self) -> None:
        while True:
            try:
                available = self.poll_once()
                logger.debug("Model availability: %s", available)
            except Exception:
                logger.exception("Availability probe crashed")
            if self._stop.wait(self._interval):
                return

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="fishbowl-availability", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
