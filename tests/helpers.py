"""Shared test helpers: fixed clocks, scripted random sources, timestamps."""

from datetime import UTC, datetime, timedelta

DAY_MS = 24 * 60 * 60 * 1000


def ms(year: int, month: int, day: int, hour: int = 10, minute: int = 0) -> int:
    """Epoch milliseconds for a UTC wall-clock time."""
    return int(datetime(year, month, day, hour, minute, tzinfo=UTC).timestamp() * 1000)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: int) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += int(timedelta(days=days, hours=hours).total_seconds() * 1000)

    def set(self, timestamp: int) -> None:
        self.now = timestamp


class ScriptedRandom:
    """Random source replaying fixed draws; choice() always picks the first option."""

    def __init__(self, draws: list[float]) -> None:
        self.draws = list(draws)

    def random(self) -> float:
        return self.draws.pop(0)

    def choice(self, seq):
        return seq[0]


# Draw sequence that never drops an item
NO_DROP = [0.999] * 10
