"""
Spendwise - Correction Popup State Machine

PURPOSE: Coordinates the "just added" -> "selecting" -> "thanks" flow shown
         after an ingestion, including auto-dismiss timing
SCOPE: Popup state, single cancellable dismiss timer, optimistic corrections
DEPENDENCIES: asyncio, store.py

Corrections are applied to local state immediately and sent to the server in
the background. A failed send is logged; the local change is kept.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set

from .config import config
from .store import AggregationStore, Observable

logger = logging.getLogger(__name__)

Corrector = Callable[[str, str, Optional[str], Optional[str]], Awaitable[Any]]


class PopupMode(str, Enum):
    HIDDEN = 'hidden'
    ADDED = 'added'
    SELECTING = 'selecting'
    THANKS = 'thanks'


@dataclass
class PopupItem:
    """One just-ingested expense as shown in the popup."""
    expense_id: str
    amount: float
    currency: str
    category: str
    title: str
    occurred_at: Optional[str] = None
    audio_url: Optional[str] = None
    original_category: Optional[str] = None
    original_text: Optional[str] = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any], raw_text: str = '') -> 'PopupItem':
        category = data.get('category') or config.FALLBACK_CATEGORY
        title = data.get('title') or ''
        return cls(
            expense_id=str(data.get('expense_id', '')),
            amount=float(data.get('amount') or 0.0),
            currency=data.get('currency') or config.DEFAULT_CURRENCY,
            category=category,
            title=title,
            occurred_at=data.get('occurred_at'),
            audio_url=data.get('audio_url'),
            original_category=category,
            original_text=raw_text or title,
        )

    def as_expense(self) -> Dict[str, Any]:
        return asdict(self)


class CorrectionPopup(Observable):
    """State machine behind the post-ingestion confirmation popup.

    At most one dismiss timer is pending at any time; arming a new one
    cancels the previous handle first.
    """

    def __init__(self, corrector: Corrector, store: Optional[AggregationStore] = None,
                 added_delay: float = None, thanks_delay: float = None):
        super().__init__()
        self.corrector = corrector
        self.store = store
        self.added_delay = config.ADDED_DISMISS_SECONDS if added_delay is None else added_delay
        self.thanks_delay = config.THANKS_DISMISS_SECONDS if thanks_delay is None else thanks_delay

        self.mode = PopupMode.HIDDEN
        self.items: List[PopupItem] = []
        self.editing_index: Optional[int] = None
        self.month_context = 'current'
        self._dismiss_handle: Optional[asyncio.TimerHandle] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def visible(self) -> bool:
        return self.mode is not PopupMode.HIDDEN

    @property
    def has_pending_dismiss(self) -> bool:
        return self._dismiss_handle is not None

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def show_added(self, expenses: Iterable[Mapping[str, Any]], raw_text: str = '',
                   month_context: str = 'current') -> None:
        """hidden/any -> added, after a successful ingestion response."""
        self.items = [PopupItem.from_response(e, raw_text) for e in expenses]
        self.month_context = month_context or 'current'
        self.editing_index = None
        self.mode = PopupMode.ADDED
        self._arm_dismiss(self.added_delay)
        self._notify()

    def select_item(self, index: int) -> bool:
        """Open the category picker for one item; cancels the pending dismiss."""
        if not self.visible or not 0 <= index < len(self.items):
            logger.warning(f"Ignoring item selection {index} in mode {self.mode.value}")
            return False

        self._cancel_dismiss()
        self.editing_index = index
        self.mode = PopupMode.SELECTING
        self._notify()
        return True

    def select_category(self, category: str) -> Optional[asyncio.Task]:
        """Apply the chosen category locally and send the correction in the background."""
        if self.mode is not PopupMode.SELECTING or self.editing_index is None:
            return None
        if category not in config.CATEGORIES:
            logger.warning(f"Ignoring unknown category {category!r}")
            return None

        item = self.items[self.editing_index]
        previous = item.category
        item.category = category
        if self.store is not None:
            self.store.move_category(item.as_expense(), previous, category)

        self.mode = PopupMode.THANKS
        self._notify()

        task = asyncio.ensure_future(self._send_correction(item, category))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        self._arm_dismiss(self.thanks_delay)
        return task

    def dismiss(self) -> None:
        self._cancel_dismiss()
        self.mode = PopupMode.HIDDEN
        self.editing_index = None
        self._notify()

    def close(self) -> None:
        """Stop the timer. In-flight corrections are left to complete."""
        self._cancel_dismiss()
        self._listeners.clear()

    # ========================================================================
    # INTERNALS
    # ========================================================================

    async def _send_correction(self, item: PopupItem, category: str) -> None:
        try:
            await self.corrector(item.expense_id, category, item.original_text, item.original_category)
        except Exception as e:
            logger.error(f"Failed to record correction for expense {item.expense_id}: {e}")

    def _arm_dismiss(self, delay: float) -> None:
        self._cancel_dismiss()
        loop = asyncio.get_running_loop()
        self._dismiss_handle = loop.call_later(delay, self._on_dismiss_timer)

    def _cancel_dismiss(self) -> None:
        if self._dismiss_handle is not None:
            self._dismiss_handle.cancel()
            self._dismiss_handle = None

    def _on_dismiss_timer(self) -> None:
        self._dismiss_handle = None
        self.mode = PopupMode.HIDDEN
        self.editing_index = None
        self._notify()
