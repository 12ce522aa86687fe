# tests/unit/client/test_coordinator.py
from __future__ import annotations

import threading
import time

import pytest
from authcore.client import (
    AuthenticationRequired,
    CoordinatorState,
    ReauthCoordinator,
    RefreshRejected,
    RefreshTimeout,
    Tokens,
    TransientAuthError,
)

OLD = Tokens(access_token="a0", refresh_token="r0", session_id="s1")
NEW = Tokens(access_token="a1", refresh_token="r1", session_id="s1")


class GatedRefresher:
    """Refresher that blocks until released, counting calls."""

    def __init__(self, result=NEW):
        self.calls = 0
        self.result = result
        self.release = threading.Event()

    def __call__(self, refresh_token: str) -> Tokens:
        self.calls += 1
        assert self.release.wait(5)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _wait_for_state(coordinator, state, timeout=5.0):
    deadline = time.monotonic() + timeout
    while coordinator.state is not state:
        assert time.monotonic() < deadline, f"coordinator never reached {state}"
        time.sleep(0.001)


def _run_concurrently(coordinator, refresher, n=5):
    """Start a leader, let followers pile up behind it, then release the refresh."""
    outcomes: list[object] = []
    lock = threading.Lock()

    def worker():
        try:
            value: object = coordinator.recover("a0")
        except Exception as exc:  # collected for assertions
            value = exc
        with lock:
            outcomes.append(value)

    leader = threading.Thread(target=worker)
    leader.start()
    _wait_for_state(coordinator, CoordinatorState.REFRESHING)
    followers = [threading.Thread(target=worker) for _ in range(n - 1)]
    for t in followers:
        t.start()
    time.sleep(0.05)
    refresher.release.set()
    for t in [leader, *followers]:
        t.join(5)
    return outcomes


def test_starts_logged_out():
    coordinator = ReauthCoordinator(GatedRefresher())
    assert coordinator.state is CoordinatorState.LOGGED_OUT
    with pytest.raises(AuthenticationRequired):
        coordinator.recover(None)


def test_concurrent_failures_share_one_refresh():
    refresher = GatedRefresher()
    coordinator = ReauthCoordinator(refresher)
    coordinator.install(OLD)

    outcomes = _run_concurrently(coordinator, refresher)

    assert outcomes == ["a1"] * 5
    assert refresher.calls == 1
    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.tokens == NEW


def test_stale_failure_reuses_newer_token():
    refresher = GatedRefresher()
    refresher.release.set()
    coordinator = ReauthCoordinator(refresher)
    coordinator.install(OLD)

    assert coordinator.recover("a0") == "a1"
    # A request that was sent with a0 fails after the refresh completed
    assert coordinator.recover("a0") == "a1"
    assert refresher.calls == 1


def test_rejection_logs_out_once():
    refresher = GatedRefresher(RefreshRejected("nope", status=401, code="token_replayed"))
    notified = []
    coordinator = ReauthCoordinator(refresher, on_logged_out=lambda: notified.append(1))
    coordinator.install(OLD)

    outcomes = _run_concurrently(coordinator, refresher)

    assert len(outcomes) == 5
    assert all(isinstance(o, AuthenticationRequired) for o in outcomes)
    assert notified == [1]
    assert refresher.calls == 1
    assert coordinator.state is CoordinatorState.LOGGED_OUT
    assert coordinator.tokens is None


def test_callback_fires_again_after_new_sign_in():
    refresher = GatedRefresher(RefreshRejected("nope", status=401))
    refresher.release.set()
    notified = []
    coordinator = ReauthCoordinator(refresher, on_logged_out=lambda: notified.append(1))

    for _ in range(2):
        coordinator.install(OLD)
        with pytest.raises(AuthenticationRequired):
            coordinator.recover("a0")
    assert notified == [1, 1]


def test_transient_failure_keeps_credentials():
    refresher = GatedRefresher(TransientAuthError("boom", status=503))
    refresher.release.set()
    notified = []
    coordinator = ReauthCoordinator(refresher, on_logged_out=lambda: notified.append(1))
    coordinator.install(OLD)

    with pytest.raises(TransientAuthError):
        coordinator.recover("a0")

    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.tokens == OLD
    assert notified == []


def test_unexpected_refresher_error_is_transient():
    refresher = GatedRefresher(OSError("socket closed"))
    refresher.release.set()
    coordinator = ReauthCoordinator(refresher)
    coordinator.install(OLD)

    with pytest.raises(TransientAuthError):
        coordinator.recover("a0")
    assert coordinator.tokens == OLD


def test_follower_times_out():
    refresher = GatedRefresher()
    coordinator = ReauthCoordinator(refresher, wait_timeout=0.05)
    coordinator.install(OLD)

    leader = threading.Thread(target=coordinator.recover, args=("a0",))
    leader.start()
    try:
        _wait_for_state(coordinator, CoordinatorState.REFRESHING)
        with pytest.raises(RefreshTimeout):
            coordinator.recover("a0")
    finally:
        refresher.release.set()
        leader.join(5)
    assert coordinator.tokens == NEW


def test_clear_wakes_waiters_and_wins_over_late_refresh():
    refresher = GatedRefresher()
    coordinator = ReauthCoordinator(refresher)
    coordinator.install(OLD)
    result: list[object] = []

    def attempt():
        try:
            coordinator.recover("a0")
        except AuthenticationRequired as exc:
            result.append(exc)

    leader = threading.Thread(target=attempt)
    leader.start()
    _wait_for_state(coordinator, CoordinatorState.REFRESHING)

    t = threading.Thread(target=attempt)
    t.start()
    time.sleep(0.05)
    coordinator.clear()
    t.join(5)
    refresher.release.set()
    leader.join(5)

    assert len(result) == 2
    assert coordinator.state is CoordinatorState.LOGGED_OUT
    assert coordinator.tokens is None
