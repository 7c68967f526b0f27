from datetime import timedelta, timezone

from gateway_waiter.events import WindowEventKind
from gateway_waiter.handlers import Dispatch
from gateway_waiter.state import TwoFactorStatus

from conftest import FakeWindow, WEEKDAY_NOON, later, make_event, make_main_window

T0 = WEEKDAY_NOON.astimezone(timezone.utc)


def two_factor_window():
    return FakeWindow(title="Second Factor Authentication", name="dialog0", labels=["Approve on your phone"])


def challenge(harness, window, at):
    return harness.chain.classify(make_event(WindowEventKind.OPENED, window, at))


def close(harness, window, at):
    return harness.chain.classify(make_event(WindowEventKind.CLOSED, window, at))


def test_opened_counts_attempts(harness):
    window = two_factor_window()

    assert challenge(harness, window, T0) is Dispatch.HANDLED

    tfa = harness.state.two_factor
    assert tfa.attempts == 1
    assert tfa.requested_at == T0
    assert harness.log.contains("2FA confirmation attempts: 1/3")
    assert not harness.log.contains("Unknown message window detected")


def test_quick_close_is_success_and_resets(harness):
    window = two_factor_window()
    challenge(harness, window, T0)

    close(harness, window, later(T0, 100))

    tfa = harness.state.two_factor
    assert tfa.attempts == 0
    assert tfa.status is TwoFactorStatus.CONFIRMED
    assert harness.log.contains("2FA confirmation success")
    assert harness.scheduler.plans == []


def test_slow_close_schedules_escalating_relogin(harness):
    window = two_factor_window()
    challenge(harness, window, T0)

    close(harness, window, later(T0, 151))

    assert harness.state.two_factor.status is TwoFactorStatus.TIMED_OUT
    assert harness.log.contains("2FA confirmation timeout")
    assert harness.log.contains("New login attempt with 2FA")
    [plan] = harness.scheduler.plans
    assert plan.delay == timedelta(seconds=10)
    assert plan.resume_action == harness.handlers.relogin


def test_timeout_boundary_counts_as_timeout(harness):
    window = two_factor_window()
    challenge(harness, window, T0)

    close(harness, window, later(T0, 150))

    assert harness.log.contains("2FA confirmation timeout")


def test_second_timeout_waits_longer(harness):
    window = two_factor_window()
    challenge(harness, window, T0)
    close(harness, window, later(T0, 151))
    challenge(harness, window, later(T0, 200))
    close(harness, window, later(T0, 400))

    assert [p.delay for p in harness.scheduler.plans] == [
        timedelta(seconds=10),
        timedelta(seconds=20),
    ]


def test_third_timeout_gives_up(harness):
    harness.state.two_factor.attempts = 2
    window = two_factor_window()
    challenge(harness, window, T0)

    close(harness, window, later(T0, 151))

    assert harness.state.two_factor.attempts == 3
    assert harness.log.contains("2FA maximum attempts reached")
    assert not harness.log.contains("New login attempt with 2FA")
    assert harness.scheduler.plans == []


def test_close_without_request_is_ignored(harness):
    close(harness, two_factor_window(), T0)

    assert harness.log.contains("2FA window closed without a recorded request")
    assert harness.state.two_factor.status is TwoFactorStatus.IDLE
    assert harness.scheduler.plans == []


def test_relogin_after_timeout_uses_main_window(harness):
    main = make_main_window()
    harness.state.main_window = main
    window = two_factor_window()
    challenge(harness, window, T0)
    close(harness, window, later(T0, 151))

    harness.scheduler.plans[0].resume_action()

    assert main.clicks == ["Paper Trading", "Paper Log In"]
