"""Tests for the FeedbackWorker interval loop."""

import threading
import time

from worker.processor import ProcessResult
from worker.runner import FeedbackWorker


class RecordingProcessor:
    """Stands in for FeedbackProcessor; optionally blocks until released."""

    def __init__(self, block: threading.Event = None, fail: bool = False):
        self.calls = []
        self.block = block
        self.fail = fail
        self.entered = threading.Event()

    def process_once(self, batch_size=None):
        self.calls.append(batch_size)
        self.entered.set()
        if self.block is not None:
            self.block.wait(timeout=5)
        if self.fail:
            raise RuntimeError("database is down")
        return ProcessResult(processed=1, succeeded=1)


def test_tick_passes_batch_size():
    processor = RecordingProcessor()
    worker = FeedbackWorker(processor, interval=1.0, batch_size=7)

    result = worker.tick()

    assert result.succeeded == 1
    assert processor.calls == [7]


def test_tick_is_not_reentrant():
    release = threading.Event()
    processor = RecordingProcessor(block=release)
    worker = FeedbackWorker(processor, interval=1.0)

    background = threading.Thread(target=worker.tick)
    background.start()
    assert processor.entered.wait(timeout=5)

    # the first round is still running, so this one is skipped
    assert worker.tick() is None

    release.set()
    background.join(timeout=5)
    assert len(processor.calls) == 1


def test_loop_survives_failing_rounds_and_stops():
    processor = RecordingProcessor(fail=True)
    worker = FeedbackWorker(processor, interval=0.01)

    worker.start()
    deadline = time.monotonic() + 5
    while len(processor.calls) < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    worker.stop(timeout=5)

    assert len(processor.calls) >= 3
    assert not worker.running
