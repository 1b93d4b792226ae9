from __future__ import annotations

import threading
import time
from collections.abc import Callable

import allure
import pytest

from ai_feedback.jobs.guards import NO_GROUP_KEY, GuardService

pytestmark = [
    allure.epic("Feedback Jobs"),
    allure.feature("Admission Guards"),
]


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def _wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return
        time.sleep(0.005)
    raise AssertionError("condition not reached in time")


def test_rejects_non_positive_limits() -> None:
    with pytest.raises(ValueError, match="max_concurrency"):
        GuardService(max_concurrency=0)
    with pytest.raises(ValueError, match="max_per_minute"):
        GuardService(max_per_minute=0)


def test_in_flight_never_exceeds_ceiling() -> None:
    guards = GuardService(max_concurrency=2)
    peak = 0
    current = 0
    counter_lock = threading.Lock()

    def _work() -> None:
        nonlocal peak, current
        with guards.slot():
            with counter_lock:
                current += 1
                peak = max(peak, current)
            time.sleep(0.02)
            with counter_lock:
                current -= 1

    threads = [threading.Thread(target=_work) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert peak == 2
    assert guards.in_flight == 0
    assert guards.waiting == 0


def test_release_hands_slot_to_longest_waiting_acquirer() -> None:
    guards = GuardService(max_concurrency=1)
    release_first = guards.acquire()
    order: list[str] = []
    proceed = {name: threading.Event() for name in ("A", "B")}

    def _worker(name: str) -> None:
        release = guards.acquire()
        order.append(name)
        proceed[name].wait(timeout=5)
        release()

    threads: list[threading.Thread] = []
    for name in ("A", "B"):
        thread = threading.Thread(target=_worker, args=(name,))
        thread.start()
        threads.append(thread)
        expected_waiting = len(threads)
        _wait_for(lambda expected=expected_waiting: guards.waiting == expected)

    release_first()
    _wait_for(lambda: order == ["A"])
    assert guards.in_flight == 1
    assert guards.waiting == 1

    proceed["A"].set()
    _wait_for(lambda: order == ["A", "B"])
    assert guards.in_flight == 1

    proceed["B"].set()
    for thread in threads:
        thread.join(timeout=5)
    assert guards.in_flight == 0


def test_release_is_idempotent() -> None:
    guards = GuardService(max_concurrency=2)
    release_one = guards.acquire()
    guards.acquire()

    release_one()
    release_one()

    assert guards.in_flight == 1


def test_slot_releases_on_exception() -> None:
    guards = GuardService(max_concurrency=1)

    with pytest.raises(RuntimeError), guards.slot():
        raise RuntimeError("boom")

    assert guards.in_flight == 0


def test_try_consume_limits_events_per_window() -> None:
    clock = _FakeClock()
    guards = GuardService(max_per_minute=3, clock=clock)

    assert [guards.try_consume("class-1") for _ in range(3)] == [True, True, True]
    assert guards.try_consume("class-1") is False
    assert guards.try_consume("class-2") is True

    clock.now += 30
    assert guards.try_consume("class-1") is False

    clock.now += 31
    assert guards.try_consume("class-1") is True


def test_rejected_attempts_are_not_recorded() -> None:
    clock = _FakeClock()
    guards = GuardService(max_per_minute=1, clock=clock)

    assert guards.try_consume("k") is True
    clock.now += 59
    assert guards.try_consume("k") is False
    clock.now += 2
    assert guards.try_consume("k") is True


def test_missing_key_uses_shared_bucket() -> None:
    guards = GuardService(max_per_minute=2, clock=_FakeClock())

    assert guards.try_consume(None) is True
    assert guards.try_consume("") is True
    assert guards.try_consume(NO_GROUP_KEY) is False


def test_cleanup_drops_stale_keys_above_threshold() -> None:
    clock = _FakeClock()
    guards = GuardService(max_per_minute=5, cleanup_threshold=2, clock=clock)
    guards.try_consume("a")
    guards.try_consume("b")
    assert guards.tracked_keys == 2

    clock.now += 61
    guards.try_consume("c")

    assert guards.tracked_keys == 1
