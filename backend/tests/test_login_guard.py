from datetime import datetime, timedelta

from identity_core.auth.login_guard import LoginGuard


def test_lock_after_max_failures_inside_window():
    guard = LoginGuard(max_failures=3, window_seconds=60, lock_seconds=120)
    key = guard.key_for("t1", "Alice@Acme.test", "10.0.0.1")
    start = datetime(2030, 1, 1, 12, 0, 0)

    assert guard.register_failure(key, now=start) is None
    assert guard.register_failure(key, now=start + timedelta(seconds=10)) is None
    locked_until = guard.register_failure(key, now=start + timedelta(seconds=20))

    assert locked_until == start + timedelta(seconds=140)
    assert guard.is_locked(key, now=start + timedelta(seconds=139)) == locked_until
    assert guard.is_locked(key, now=locked_until) is None


def test_failures_outside_window_do_not_count():
    guard = LoginGuard(max_failures=2, window_seconds=60, lock_seconds=120)
    key = guard.key_for("t1", "alice@acme.test", None)
    start = datetime(2030, 1, 1, 12, 0, 0)

    guard.register_failure(key, now=start)

    assert guard.register_failure(key, now=start + timedelta(seconds=61)) is None


def test_clear_failures_resets_the_key():
    guard = LoginGuard(max_failures=1, window_seconds=60, lock_seconds=120)
    key = guard.key_for("t1", "alice@acme.test", "10.0.0.1")

    assert guard.register_failure(key) is not None
    guard.clear_failures(key)

    assert guard.is_locked(key) is None


def test_key_normalises_email_and_separates_tenants():
    assert LoginGuard.key_for("t1", " Alice@Acme.test ", "1.2.3.4") == "t1:alice@acme.test:1.2.3.4"
    assert LoginGuard.key_for("t1", "a@b.c", None) != LoginGuard.key_for("t2", "a@b.c", None)


def test_stale_keys_are_dropped_once_checked_after_the_window():
    guard = LoginGuard(max_failures=5, window_seconds=60, lock_seconds=120)
    start = datetime(2030, 1, 1, 12, 0, 0)
    keys = [guard.key_for("t1", f"user{i}@acme.test", "10.0.0.1") for i in range(200)]
    for key in keys:
        guard.register_failure(key, now=start)

    later = start + timedelta(days=365)
    for key in keys:
        assert guard.is_locked(key, now=later) is None

    assert len(guard._failures) == 0
    assert len(guard._locked_until) == 0


def test_keys_never_retried_are_swept_by_later_failures():
    guard = LoginGuard(max_failures=2, window_seconds=60, lock_seconds=120)
    start = datetime(2030, 1, 1, 12, 0, 0)
    for i in range(100):
        key = guard.key_for("t1", f"user{i}@acme.test", "10.0.0.1")
        guard.register_failure(key, now=start)
        guard.register_failure(key, now=start)
    assert len(guard._locked_until) == 100

    fresh = guard.key_for("t1", "someone@acme.test", "10.0.0.2")
    guard.register_failure(fresh, now=start + timedelta(seconds=200))

    assert list(guard._failures) == [fresh]
    assert guard._locked_until == {}


def test_lock_does_not_keep_a_failure_entry():
    guard = LoginGuard(max_failures=1, window_seconds=60, lock_seconds=120)
    key = guard.key_for("t1", "alice@acme.test", "10.0.0.1")

    guard.register_failure(key)

    assert key not in guard._failures
    assert guard.is_locked(key) is not None
