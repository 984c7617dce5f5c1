"""
Clock implementations injected into the scheduler.
"""

from datetime import datetime

import pendulum
from pendulum import DateTime


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> DateTime:
        return pendulum.now("UTC")


class FixedClock:
    """Clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime | str):
        if isinstance(instant, str):
            instant = pendulum.parse(instant)
        self._instant = pendulum.instance(instant).in_timezone("UTC")

    def now(self) -> DateTime:
        return self._instant

    def advance(self, **kwargs) -> None:
        self._instant = self._instant.add(**kwargs)
