"""
Tests for debounce/throttle helpers and scroll arithmetic.
"""

import asyncio

import pytest

from scheduling import autoscroll_step, debounce, should_load_more, throttle


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestThrottle:
    def test_calls_inside_interval_are_dropped(self):
        clock = FakeClock()
        calls = []

        @throttle(1.0, clock=clock)
        async def load():
            calls.append(clock.now)
            return len(calls)

        async def scenario():
            first = await load()
            clock.now += 0.5
            second = await load()
            clock.now += 0.75
            third = await load()
            return first, second, third

        assert asyncio.run(scenario()) == (1, None, 2)
        assert calls == [100.0, 101.25]


class TestDebounce:
    def test_only_last_call_runs(self):
        seen = []

        @debounce(0.01)
        async def suggest(query):
            seen.append(query)
            return query

        async def scenario():
            suggest("p")
            suggest("pi")
            last = suggest("pic")
            return await last

        assert asyncio.run(scenario()) == "pic"
        assert seen == ["pic"]


class TestShouldLoadMore:
    def test_past_threshold(self):
        assert should_load_more(scroll_y=700, viewport_height=100, document_height=1000)

    def test_before_threshold(self):
        assert not should_load_more(scroll_y=600, viewport_height=100, document_height=1000)


class TestAutoscrollStep:
    @pytest.mark.parametrize("speed,expected", [
        (8, 0.5),
        (5, 2.5),
        (2, 6.0),
        (10, 0.5),
        (4, 1.25),
    ])
    def test_step(self, speed, expected):
        assert autoscroll_step(speed) == pytest.approx(expected)

    def test_non_positive_speed_rejected(self):
        with pytest.raises(ValueError):
            autoscroll_step(0)
