"""Unit tests for deadline-bound polling and cancellation."""

import threading

import pytest

from agent_panel.errors import ApError, ErrorCode
from agent_panel.services.polling import CancellationToken, PollSchedule, check_cancelled, poll

from tests.agent_panel.fixtures.mock_aerospace import FakeClock


def counting_attempt(succeed_on: int):
    calls = {"count": 0}

    async def attempt():
        calls["count"] += 1
        return "found" if calls["count"] >= succeed_on else None

    return attempt, calls


class TestPoll:
    """Tests for poll()."""

    @pytest.mark.asyncio
    async def test_returns_first_value_without_sleeping(self):
        clock = FakeClock()
        attempt, calls = counting_attempt(1)

        result = await poll(attempt, 1.0, PollSchedule(0.2), clock=clock, sleep=clock.sleep)

        assert result == "found"
        assert calls["count"] == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_schedule_paces_attempts(self):
        clock = FakeClock()
        attempt, calls = counting_attempt(4)

        await poll(attempt, 5.0, PollSchedule(0.2, initial_intervals=(0.05, 0.1)), clock=clock, sleep=clock.sleep)

        assert calls["count"] == 4
        assert clock.sleeps == pytest.approx([0.05, 0.1, 0.2])

    @pytest.mark.asyncio
    async def test_gives_up_at_deadline(self):
        clock = FakeClock()
        start = clock.now
        attempt, calls = counting_attempt(1000)

        result = await poll(attempt, 1.0, PollSchedule(0.3), clock=clock, sleep=clock.sleep)

        assert result is None
        assert clock.now - start == pytest.approx(1.0)
        # Last sleep is trimmed to the remaining budget
        assert clock.sleeps == pytest.approx([0.3, 0.3, 0.3, 0.1])
        assert calls["count"] == 5

    @pytest.mark.asyncio
    async def test_zero_budget_does_not_poll(self):
        attempt, calls = counting_attempt(1)
        assert await poll(attempt, 0, PollSchedule(0.1)) is None
        assert calls["count"] == 0

    @pytest.mark.asyncio
    async def test_attempt_errors_propagate(self):
        async def attempt():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await poll(attempt, 1.0, PollSchedule(0.1), clock=FakeClock())

    @pytest.mark.asyncio
    async def test_cancellation_between_attempts(self):
        clock = FakeClock()
        token = CancellationToken()
        calls = {"count": 0}

        async def attempt():
            calls["count"] += 1
            if calls["count"] == 2:
                token.cancel()
            return None

        with pytest.raises(ApError) as exc_info:
            await poll(attempt, 5.0, PollSchedule(0.1), clock=clock, sleep=clock.sleep,
                       cancellation=token, stage="editor workspace poll")

        assert exc_info.value.code == ErrorCode.CANCELLED
        assert exc_info.value.context["stage"] == "editor workspace poll"
        assert calls["count"] == 2


class TestCancellationToken:
    """Tests for the cancellation flag."""

    def test_cancel_from_another_thread(self):
        token = CancellationToken()
        thread = threading.Thread(target=token.cancel)
        thread.start()
        thread.join()

        assert token.is_cancelled
        with pytest.raises(ApError):
            token.check("launch")

    def test_check_cancelled_accepts_none(self):
        check_cancelled(None, "anything")

    def test_schedule_intervals(self):
        schedule = PollSchedule(0.2, initial_intervals=(0.05,))
        assert [schedule.interval(i) for i in range(3)] == [0.05, 0.2, 0.2]
