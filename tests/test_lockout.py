import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from landguard.errors import LoginInProgress, StoreUnavailable
from landguard.lockout import LockoutController, LockoutState, normalize_identity
from landguard.models import InMemoryAttemptLedger

EMAIL = "user@example.com"


@pytest.fixture
def ledger():
    return InMemoryAttemptLedger()


@pytest.fixture
def controller(ledger, clock):
    return LockoutController(ledger, clock=clock)


def fail(controller, clock, times, spacing_seconds=10, identity=EMAIL):
    for _ in range(times):
        controller.record_attempt(identity, False)
        clock.advance(seconds=spacing_seconds)


@pytest.mark.parametrize("failures, state", [
    (0, LockoutState.CLEAN),
    (2, LockoutState.CLEAN),
    (3, LockoutState.CAPTCHA_REQUIRED),
    (4, LockoutState.CAPTCHA_REQUIRED),
    (5, LockoutState.LOCKED),
    (7, LockoutState.LOCKED),
])
def test_state_follows_failure_count(controller, clock, failures, state):
    fail(controller, clock, failures)
    assert controller.state_for(EMAIL) == state


def test_identity_key_is_normalized(controller, clock):
    fail(controller, clock, 3, identity="  User@Example.COM ")
    assert normalize_identity("  User@Example.COM ") == EMAIL
    assert controller.failed_count(EMAIL) == 3


def test_failures_age_out_of_window_without_deletion(controller, ledger, clock):
    fail(controller, clock, 5, spacing_seconds=60)
    assert controller.state_for(EMAIL) == LockoutState.LOCKED

    clock.advance(minutes=15)
    assert controller.state_for(EMAIL) == LockoutState.CLEAN
    assert len(ledger.all_attempts(EMAIL)) == 5


def test_window_boundary_is_exclusive(controller, clock):
    first = clock()
    fail(controller, clock, 1, spacing_seconds=0)
    clock.now = first + controller.window
    assert controller.failed_count(EMAIL) == 0


def test_unlock_time_is_when_oldest_contributing_failure_leaves(controller, clock):
    start = clock()
    fail(controller, clock, 6, spacing_seconds=60)
    status = controller.status(EMAIL)
    assert status.state == LockoutState.LOCKED
    # Six failures: dropping below five needs the second one to leave the window.
    assert status.unlock_at == start + timedelta(minutes=1) + controller.window

    clock.now = status.unlock_at
    assert controller.state_for(EMAIL) == LockoutState.CAPTCHA_REQUIRED


def test_success_marker_is_display_only(controller, clock):
    fail(controller, clock, 3)
    controller.clear(EMAIL)
    status = controller.status(EMAIL)
    assert status.state == LockoutState.CAPTCHA_REQUIRED
    assert status.failed_count == 3
    assert status.failures_since_last_success == 0
    assert status.last_success_at == clock()


def test_unreadable_ledger_reads_as_locked(clock):
    ledger = MagicMock()
    ledger.list_since.side_effect = StoreUnavailable("down")
    controller = LockoutController(ledger, clock=clock)
    assert controller.state_for(EMAIL) == LockoutState.LOCKED
    status = controller.status(EMAIL)
    assert status.state == LockoutState.LOCKED
    assert status.ledger_available is False
    assert status.to_dict()["remainingAttempts"] == 0


def test_status_reports_remaining_attempts(controller, clock):
    fail(controller, clock, 2)
    data = controller.status(EMAIL).to_dict()
    assert data["state"] == "Clean"
    assert data["failedAttempts"] == 2
    assert data["remainingAttempts"] == 3
    assert data["unlockAt"] is None


def test_parallel_appends_are_all_counted(controller):
    threads = [threading.Thread(target=controller.record_attempt, args=(EMAIL, False)) for _ in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert controller.failed_count(EMAIL) == 20
    assert controller.state_for(EMAIL) == LockoutState.LOCKED


def test_purge_removes_only_expired_attempts(controller, ledger, clock):
    fail(controller, clock, 2)
    clock.advance(days=31)
    fail(controller, clock, 1)
    assert controller.purge_expired_attempts() == 2
    assert len(ledger.all_attempts(EMAIL)) == 1


def test_thresholds_must_be_ordered(ledger):
    with pytest.raises(ValueError):
        LockoutController(ledger, lock_threshold=3, captcha_threshold=5)


def test_exclusive_releases_lease_even_when_body_fails(controller, ledger, clock):
    with pytest.raises(RuntimeError):
        with controller.exclusive(EMAIL):
            raise RuntimeError("boom")
    assert ledger.acquire_lease(EMAIL, "someone-else", clock(), 10) is True


def test_busy_lease_rejects_and_stale_lease_is_taken_over(ledger, clock):
    controller = LockoutController(ledger, clock=clock, lease_seconds=10, lease_retries=2, lease_retry_delay=0)
    assert ledger.acquire_lease(EMAIL, "crashed-instance", clock(), 10) is True

    with pytest.raises(LoginInProgress):
        with controller.exclusive(EMAIL):
            pass

    clock.advance(seconds=11)
    with controller.exclusive(EMAIL):
        assert ledger.acquire_lease(EMAIL, "crashed-instance", clock(), 10) is False


def test_lease_store_failure_propagates(clock):
    ledger = MagicMock()
    ledger.acquire_lease.side_effect = StoreUnavailable("down")
    with pytest.raises(StoreUnavailable):
        with LockoutController(ledger, clock=clock).exclusive(EMAIL):
            pass
