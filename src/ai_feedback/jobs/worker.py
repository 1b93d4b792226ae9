"""Periodic worker that drives the feedback job processor."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from ai_feedback.config import WorkerSettings
from ai_feedback.jobs.models import ProcessSummary
from ai_feedback.jobs.processor import FeedbackJobProcessor

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3.0
DEFAULT_STOP_JOIN_SECONDS = 15.0


class FeedbackWorker:
    """Fires one processor batch per interval, never overlapping ticks."""

    def __init__(
        self,
        *,
        processor: FeedbackJobProcessor,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        batch_size: int | None = None,
    ) -> None:
        self.processor = processor
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._stop = threading.Event()
        self._tick_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_signal_name: str | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stop_signal_name(self) -> str | None:
        return self._stop_signal_name

    def start(self) -> None:
        """Start the background schedule; a second call while running is a no-op."""

        if self.running:
            return
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._loop,
            args=(self._stop,),
            daemon=True,
            name="ai-feedback-worker",
        )
        self._thread.start()
        logger.info("Feedback worker started (interval=%.1fs)", self.interval_seconds)

    def stop(self, *, wait: bool = False) -> None:
        """Cancel future ticks; optionally wait for an in-flight tick to finish."""

        self._stop.set()
        thread = self._thread
        if thread is None:
            return
        if wait:
            thread.join(timeout=DEFAULT_STOP_JOIN_SECONDS)
        self._thread = None
        logger.info("Feedback worker stopped")

    def tick(self) -> ProcessSummary | None:
        """Run one batch unless another tick is in progress.

        Returns None when the tick was skipped or failed.
        """

        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous tick still running; skipping")
            return None
        try:
            summary = self.processor.process_once(self.batch_size)
        except Exception:
            logger.exception("Feedback worker tick failed")
            return None
        finally:
            self._tick_lock.release()
        if summary.processed:
            logger.info(
                "Feedback worker tick: processed=%d succeeded=%d failed=%d dead=%d",
                summary.processed,
                summary.succeeded,
                summary.failed,
                summary.dead,
            )
        return summary

    def run_loop(self, *, max_ticks: int | None = None) -> ProcessSummary:
        """Run ticks in the foreground until stopped by signal or `max_ticks`."""

        if self.running:
            raise RuntimeError("Background schedule is already running")
        aggregate = ProcessSummary()
        ticks = 0
        self._stop = threading.Event()
        with self._signal_handlers():
            while not self._stop.is_set():
                summary = self.tick()
                ticks += 1
                if summary is not None:
                    aggregate.processed += summary.processed
                    aggregate.succeeded += summary.succeeded
                    aggregate.failed += summary.failed
                    aggregate.dead += summary.dead
                if max_ticks is not None and ticks >= max_ticks:
                    break
                self._stop.wait(timeout=self.interval_seconds)
        return aggregate

    def _loop(self, stop: threading.Event) -> None:
        while not stop.wait(timeout=self.interval_seconds):
            self.tick()

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self._request_stop(signal_name=name)

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

    def _request_stop(self, *, signal_name: str) -> None:
        self._stop_signal_name = signal_name
        self._stop.set()
        logger.info("Stop requested by %s", signal_name)


def start_worker_if_enabled(
    *,
    settings: WorkerSettings,
    processor: FeedbackJobProcessor,
    batch_size: int | None = None,
) -> FeedbackWorker | None:
    """Start a background worker for an embedding application when enabled."""

    if not settings.enabled:
        logger.info("Feedback worker disabled (AI_FEEDBACK_WORKER_ENABLED is off)")
        return None
    worker = FeedbackWorker(
        processor=processor,
        interval_seconds=settings.interval_ms / 1000.0,
        batch_size=batch_size,
    )
    worker.start()
    return worker
