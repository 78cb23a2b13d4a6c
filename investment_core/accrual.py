"""
Value Accrual Engine

The single definition of what an investment is worth at a given instant:

    days  = max(floor((now - start_date) / 1 day), 1)
    value = min(principal + principal * rate / 100 * days, final_value_cap)

At least one day of growth counts from the moment of creation. A start
date in the future clamps to one day as well. Everything here is pure; the
caller supplies "now".
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from .clock import Clock, SystemClock, ensure_utc
from .currency import Money

if TYPE_CHECKING:
    from .investments import Investment

ONE_DAY = timedelta(days=1)
HUNDRED = Decimal("100")


def days_elapsed(start_date: datetime, now: datetime) -> int:
    """Whole days since start, never less than one"""
    return max((ensure_utc(now) - ensure_utc(start_date)) // ONE_DAY, 1)


def current_value(investment: 'Investment', now: datetime) -> Money:
    principal = investment.principal
    days = days_elapsed(investment.start_date, now)
    growth = principal.amount * investment.daily_growth_rate / HUNDRED * days
    raw = Money(principal.amount + growth, principal.currency)
    return min(raw, investment.final_value_cap)


def is_mature(investment: 'Investment', now: datetime) -> bool:
    """Reached the payout cap, or the term is over"""
    return (current_value(investment, now) >= investment.final_value_cap
            or ensure_utc(now) >= ensure_utc(investment.end_date))


def claimable_profit(investment: 'Investment', now: datetime) -> Money:
    """Accrued profit not yet claimed; zero or negative means nothing to claim"""
    return current_value(investment, now) - investment.principal - investment.total_claimed


class AccrualEngine:
    """Clock-bound wrapper over the accrual functions"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now else self.clock.now()

    def current_value(self, investment: 'Investment', now: Optional[datetime] = None) -> Money:
        return current_value(investment, self._now(now))

    def claimable_profit(self, investment: 'Investment', now: Optional[datetime] = None) -> Money:
        return claimable_profit(investment, self._now(now))

    def is_mature(self, investment: 'Investment', now: Optional[datetime] = None) -> bool:
        return is_mature(investment, self._now(now))
