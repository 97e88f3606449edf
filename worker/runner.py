"""
Feedback worker — calls FeedbackProcessor.process_once() on a fixed interval.

This runs in a daemon thread inside the worker process:

    every FEEDBACK_WORKER_INTERVAL seconds:
        tick() → processor.process_once(FEEDBACK_WORKER_BATCH_SIZE)

Ticks never overlap. If a round is still running when the next tick is due
(a slow provider, a big batch), that tick is skipped instead of stacking a
second round on top of the first. Other processes may still run their own
rounds at the same time; the claimer's conditional UPDATE keeps them apart.

A failing tick is logged and the loop carries on; one bad round must not kill
the worker.
"""

import logging
import threading
from typing import Optional

from config.settings import settings
from worker.processor import FeedbackProcessor, ProcessResult

logger = logging.getLogger(__name__)


class FeedbackWorker:

    def __init__(
        self,
        processor: FeedbackProcessor,
        interval: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        self._processor = processor
        self._interval = interval if interval is not None else settings.FEEDBACK_WORKER_INTERVAL
        self._batch_size = batch_size if batch_size is not None else settings.FEEDBACK_WORKER_BATCH_SIZE
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the interval loop in a daemon thread."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="feedback-worker-loop", daemon=True
        )
        self._thread.start()
        logger.info(
            f"Feedback worker started (interval={self._interval}s, "
            f"batch_size={self._batch_size or settings.FEEDBACK_DEFAULT_BATCH_SIZE})"
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop. The current round is allowed to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info("Feedback worker stopped")

    def tick(self) -> Optional[ProcessResult]:
        """Run one round unless another one is still in flight. Returns None if skipped."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous feedback round still running, skipping tick")
            return None
        try:
            return self._processor.process_once(self._batch_size)
        finally:
            self._tick_lock.release()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                result = self.tick()
                if result is not None and result.processed:
                    logger.debug(f"Feedback round: {result}")
            except Exception as e:
                logger.error(f"Feedback worker loop error: {e}", exc_info=True)
            self._stop_event.wait(self._interval)
