from chatstream.engine.thinking import ThinkingClock


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_periods_are_additive_and_gaps_excluded() -> None:
    clock = FakeClock()
    thinking = ThinkingClock(clock)

    assert thinking.open() is True
    clock.advance(3.7)
    assert thinking.close() == 3

    clock.advance(50)  # gap between periods is not counted

    thinking.open()
    clock.advance(2.2)
    thinking.close()

    assert thinking.accumulated_seconds == 5
    assert thinking.final_seconds() == 5


def test_open_is_idempotent_while_thinking() -> None:
    clock = FakeClock()
    thinking = ThinkingClock(clock)

    thinking.open()
    clock.advance(1)
    assert thinking.open() is False
    clock.advance(1)
    assert thinking.close() == 2


def test_close_without_open_period_adds_nothing() -> None:
    thinking = ThinkingClock(FakeClock())
    assert thinking.close() == 0
    assert thinking.accumulated_seconds == 0
    assert not thinking.is_thinking


def test_elapsed_includes_open_period() -> None:
    clock = FakeClock()
    thinking = ThinkingClock(clock)

    thinking.open()
    clock.advance(4.9)
    thinking.close()
    thinking.open()
    clock.advance(1.5)

    assert thinking.is_thinking
    assert thinking.elapsed() == 5
    assert thinking.final_seconds() == 5


def test_reset_clears_everything() -> None:
    clock = FakeClock()
    thinking = ThinkingClock(clock)
    thinking.open()
    clock.advance(3)
    thinking.reset()

    assert thinking.elapsed() == 0
    assert not thinking.is_thinking
