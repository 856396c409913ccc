"""Fixed instants and identifiers shared across the suite."""

from datetime import datetime, timedelta, timezone

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
BUSINESS_ID = "01HBUSINESS0000000000000001"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value
