from datetime import date


class SystemClock:
    """Source of "today" for the loan services."""

    def today(self) -> date:
        return date.today()


class FixedClock:
    """Clock pinned to a given day. Used by tests and backfill scripts."""

    def __init__(self, day: date):
        self.day = day

    def today(self) -> date:
        return self.day

    def set(self, day: date):
        self.day = day
