"""
Spendwise - Aggregation Store

PURPOSE: Client-side month -> category -> total rollups of a user's expenses
SCOPE: Incremental batch application, full recompute, category moves,
       month selection and change notification
DEPENDENCIES: datetime, logging

Aggregates are a pure function of the expense set: replaying the same
expenses through ``apply_batch`` in any order, or through ``recompute``,
yields the same numbers. Sums are rounded to cents at every step so float
addition order does not leak into the result.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .config import config

logger = logging.getLogger(__name__)

SHORT_MONTHS = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
                'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']

_EPSILON = 0.005


def month_key(moment: datetime) -> str:
    """Label for the calendar month of ``moment``, e.g. "Jan 2026"."""
    return f"{SHORT_MONTHS[moment.month - 1]} {moment.year}"


def recent_months(count: int = 6, now: Optional[datetime] = None) -> List[str]:
    """Current month plus the ``count - 1`` months before it, newest first."""
    now = now or datetime.now()
    months = []
    year, month = now.year, now.month
    for _ in range(count):
        months.append(f"{SHORT_MONTHS[month - 1]} {year}")
        month -= 1
        if month == 0:
            month, year = 12, year - 1
    return months


def expense_month(expense: Mapping[str, Any], default: str) -> str:
    """Month key of an expense's ``occurred_at``, or ``default`` if unparseable."""
    occurred_at = expense.get('occurred_at')
    if not occurred_at:
        return default
    try:
        return month_key(datetime.fromisoformat(str(occurred_at).replace('Z', '+00:00')))
    except ValueError:
        logger.warning(f"Unparseable occurred_at {occurred_at!r}, using {default}")
        return default


def expense_amount(expense: Mapping[str, Any]) -> float:
    try:
        return max(0.0, float(expense.get('amount') or 0.0))
    except (TypeError, ValueError):
        return 0.0


class Observable:
    """Minimal subscribe/notify hook for client state containers."""

    def __init__(self):
        self._listeners: List[Callable[[Any], None]] = []

    def subscribe(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"State listener failed: {e}")


@dataclass
class MonthAggregate:
    """Totals for one calendar month. Only positive category sums are kept."""
    total: float = 0.0
    categories: Dict[str, float] = field(default_factory=dict)

    def add(self, category: str, amount: float) -> None:
        if amount <= 0:
            return
        self.total = round(self.total + amount, 2)
        self.categories[category] = round(self.categories.get(category, 0.0) + amount, 2)

    def remove(self, category: str, amount: float) -> float:
        """Take up to ``amount`` out of a bucket; returns what was actually removed."""
        held = self.categories.get(category, 0.0)
        removed = min(amount, held)
        if removed <= 0:
            return 0.0
        self.total = round(self.total - removed, 2)
        remaining = round(held - removed, 2)
        if remaining > _EPSILON:
            self.categories[category] = remaining
        else:
            self.categories.pop(category, None)
        return removed

    def to_dict(self) -> Dict[str, Any]:
        return {'total': self.total, 'categories': dict(self.categories)}


class AggregationStore(Observable):
    """Per-user monthly rollups, owned by one client session."""

    def __init__(self, new_user_threshold: int = None, now: Optional[datetime] = None):
        super().__init__()
        self.new_user_threshold = new_user_threshold or config.NEW_USER_THRESHOLD
        self.current_month = month_key(now or datetime.now())
        self.monthly_data: Dict[str, MonthAggregate] = {self.current_month: MonthAggregate()}
        self.selected_month = self.current_month
        self.available_months = recent_months(now=now)
        self.logs_count = 0

    @property
    def is_new_user(self) -> bool:
        return self.logs_count < self.new_user_threshold

    # ========================================================================
    # UPDATES
    # ========================================================================

    def apply_batch(self, expenses: Iterable[Mapping[str, Any]]) -> None:
        """Add a server-confirmed batch of expenses to the rollups."""
        count = 0
        for expense in expenses:
            self._add(self.monthly_data, expense)
            count += 1
        self.logs_count += count
        self._notify()

    def recompute(self, expenses: Iterable[Mapping[str, Any]]) -> None:
        """Rebuild every month from the full expense list."""
        monthly_data: Dict[str, MonthAggregate] = {}
        count = 0
        for expense in expenses:
            self._add(monthly_data, expense)
            count += 1

        monthly_data.setdefault(self.current_month, MonthAggregate())
        self.monthly_data = monthly_data
        self.logs_count = count
        logger.info(f"Recomputed aggregates from {count} expense(s) across {len(monthly_data)} month(s)")
        self._notify()

    def move_category(self, expense: Mapping[str, Any], old_category: str, new_category: str) -> None:
        """Move an expense's amount between categories; the month total is unchanged."""
        if old_category == new_category:
            return
        month = expense_month(expense, self.current_month)
        aggregate = self.monthly_data.get(month)
        if aggregate is None:
            logger.warning(f"No aggregate for {month}; category move skipped")
            return

        # Only what the old bucket actually holds can move
        amount = expense_amount(expense)
        moved = aggregate.remove(old_category, amount)
        if moved < amount:
            logger.warning(f"{old_category} in {month} held less than the moved expense")
        aggregate.add(new_category, moved)
        self._notify()

    def set_selected_month(self, month: str) -> None:
        self.selected_month = month
        self._notify()

    # ========================================================================
    # SELECTORS
    # ========================================================================

    def month_total(self, month: Optional[str] = None) -> float:
        aggregate = self.monthly_data.get(month or self.selected_month)
        return aggregate.total if aggregate else 0.0

    def category_totals(self, month: Optional[str] = None) -> Dict[str, float]:
        aggregate = self.monthly_data.get(month or self.selected_month)
        return dict(aggregate.categories) if aggregate else {}

    def current_month_total(self) -> float:
        return self.month_total(self.current_month)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Plain-dict copy of every month, for comparison and display."""
        return {month: aggregate.to_dict() for month, aggregate in self.monthly_data.items()}

    def _add(self, monthly_data: Dict[str, MonthAggregate], expense: Mapping[str, Any]) -> None:
        month = expense_month(expense, self.current_month)
        category = expense.get('category') or config.FALLBACK_CATEGORY
        monthly_data.setdefault(month, MonthAggregate()).add(category, expense_amount(expense))
