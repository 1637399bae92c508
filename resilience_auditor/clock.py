import logging
import threading

logger = logging.getLogger("resilience_auditor.clock")

class Ticker:
    """Daemon thread that calls store.tick() once per interval."""

    def __init__(self, store, interval: float = 1.0):
        self.store = store
        self.interval = interval
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="mcx-ticker", daemon=True)
        self._thread.start()
        logger.debug("Ticker started (interval=%.2fs)", self.interval)

    def stop(self, timeout: float = 2.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.store.tick()
            except Exception:
                # Keep the clock alive; the next tick sees fresh state
                logger.exception("Tick failed")
