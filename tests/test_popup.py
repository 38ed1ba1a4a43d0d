import asyncio
from datetime import datetime

import pytest

from spendwise.popup import CorrectionPopup, PopupMode
from spendwise.store import AggregationStore

ADDED = 0.1
THANKS = 0.1


class RecordingCorrector:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def __call__(self, expense_id, corrected_category, original_text=None, predicted_category=None):
        self.calls.append((expense_id, corrected_category, original_text, predicted_category))
        if self.fail:
            raise ConnectionError("server unreachable")
        return {'success': True}


def response_expenses():
    occurred_at = datetime.now().isoformat(timespec='seconds')
    return [
        {'expense_id': 'e1', 'amount': 12.0, 'currency': 'USD', 'category': 'Food',
         'title': 'Pizza', 'occurred_at': occurred_at},
        {'expense_id': 'e2', 'amount': 30.0, 'currency': 'USD', 'category': 'Transport',
         'title': 'Uber', 'occurred_at': occurred_at},
    ]


@pytest.fixture
def store():
    store = AggregationStore()
    store.apply_batch(response_expenses())
    return store


@pytest.fixture
def corrector():
    return RecordingCorrector()


@pytest.fixture
def popup(corrector, store):
    popup = CorrectionPopup(corrector, store, added_delay=ADDED, thanks_delay=THANKS)
    yield popup
    popup.close()


class TestTimers:
    async def test_added_auto_dismisses(self, popup):
        popup.show_added(response_expenses(), 'pizza 12, uber 30')
        assert popup.mode is PopupMode.ADDED
        assert popup.has_pending_dismiss

        await asyncio.sleep(ADDED * 2)

        assert popup.mode is PopupMode.HIDDEN
        assert not popup.has_pending_dismiss

    async def test_new_batch_replaces_timer(self, popup):
        popup.show_added(response_expenses())
        await asyncio.sleep(ADDED * 0.6)
        popup.show_added(response_expenses())
        await asyncio.sleep(ADDED * 0.6)

        assert popup.mode is PopupMode.ADDED

        await asyncio.sleep(ADDED)
        assert popup.mode is PopupMode.HIDDEN

    async def test_selecting_item_cancels_dismiss(self, popup):
        popup.show_added(response_expenses())
        assert popup.select_item(1)

        await asyncio.sleep(ADDED * 2)

        assert popup.mode is PopupMode.SELECTING
        assert popup.editing_index == 1
        assert not popup.has_pending_dismiss

    async def test_close_cancels_timer(self, popup):
        popup.show_added(response_expenses())
        popup.close()
        assert not popup.has_pending_dismiss


class TestCorrections:
    async def test_select_category(self, popup, corrector, store):
        popup.show_added(response_expenses(), 'pizza 12, uber 30')
        popup.select_item(0)

        task = popup.select_category('Shopping')

        assert popup.mode is PopupMode.THANKS
        assert popup.items[0].category == 'Shopping'
        assert store.category_totals() == {'Shopping': 12.0, 'Transport': 30.0}
        assert store.current_month_total() == 42.0

        await task
        assert corrector.calls == [('e1', 'Shopping', 'pizza 12, uber 30', 'Food')]

        await asyncio.sleep(THANKS * 2)
        assert popup.mode is PopupMode.HIDDEN

    async def test_failed_send_keeps_local_change(self, store):
        corrector = RecordingCorrector(fail=True)
        popup = CorrectionPopup(corrector, store, added_delay=ADDED, thanks_delay=THANKS)
        popup.show_added(response_expenses(), 'pizza 12')
        popup.select_item(0)

        await popup.select_category('Health')

        assert len(corrector.calls) == 1
        assert popup.items[0].category == 'Health'
        assert store.category_totals()['Health'] == 12.0
        popup.close()

    async def test_predicted_category_is_the_original_one(self, popup, corrector):
        popup.show_added(response_expenses(), 'pizza 12')
        popup.select_item(0)
        await popup.select_category('Shopping')

        popup.select_item(0)
        await popup.select_category('Health')

        assert [call[3] for call in corrector.calls] == ['Food', 'Food']
        assert popup.items[0].category == 'Health'

    async def test_title_used_when_raw_text_missing(self, popup, corrector):
        popup.show_added(response_expenses())
        popup.select_item(1)
        await popup.select_category('Travel')
        assert corrector.calls[0][2] == 'Uber'

    async def test_category_requires_selecting_mode(self, popup, corrector):
        popup.show_added(response_expenses())
        assert popup.select_category('Health') is None
        assert corrector.calls == []

    async def test_unknown_category_is_ignored(self, popup, corrector):
        popup.show_added(response_expenses())
        popup.select_item(0)
        assert popup.select_category('Coffee') is None
        assert popup.mode is PopupMode.SELECTING
        assert corrector.calls == []

    async def test_select_item_out_of_range(self, popup):
        popup.show_added(response_expenses())
        assert not popup.select_item(5)
        assert popup.mode is PopupMode.ADDED

    async def test_select_item_when_hidden(self, popup):
        assert not popup.select_item(0)

    async def test_listeners_see_transitions(self, popup):
        modes = []
        popup.subscribe(lambda p: modes.append(p.mode))

        popup.show_added(response_expenses())
        popup.select_item(0)
        popup.dismiss()

        assert modes == [PopupMode.ADDED, PopupMode.SELECTING, PopupMode.HIDDEN]
