import json

import pytest

from spendwise.parsers import ExpenseParser, ExtractionService, FallbackParser, CandidateExpense

from conftest import mock_llm_client


class TestAmountParsing:
    @pytest.mark.parametrize('raw, expected', [
        ('12.50', 12.5),
        ('12,50', 12.5),
        ('1,234', 1234.0),
        ('1,234,567', 1234567.0),
        ('1,5', 1.5),
        ('3,75', 3.75),
        ('1.524,55', 1524.55),
        ('1,524.55', 1524.55),
        ('$45', 45.0),
        ('', None),
    ])
    def test_parse_amount(self, raw, expected):
        assert ExpenseParser.parse_amount(raw) == expected

    def test_extract_first_amount(self):
        assert ExpenseParser.extract_first_amount('spent 20 dollars and 5 more') == 20.0
        assert ExpenseParser.extract_first_amount('no numbers here') is None

    def test_strip_code_fences(self):
        raw = '```json\n{"expenses": []}\n```'
        assert ExpenseParser.strip_code_fences(raw) == '{"expenses": []}'


class TestCandidateExpense:
    def test_normalizes_fields(self):
        candidate = CandidateExpense(amount=-12.5, currency='eur', category='food', title='  Pizza  ')
        assert candidate.amount == 12.5
        assert candidate.currency == 'EUR'
        assert candidate.category == 'Food'
        assert candidate.title == 'Pizza'

    def test_substitutes_defaults(self):
        candidate = CandidateExpense(amount='lots', currency='euro', category='Coffee', title='')
        assert candidate.amount == 0.0
        assert candidate.currency == 'USD'
        assert candidate.category == 'Misc'
        assert candidate.title == 'Expense'

    def test_string_amount(self):
        assert CandidateExpense(amount='$1,200.50').amount == 1200.5


class TestFallbackParser:
    def test_uses_first_number(self, settings):
        result = FallbackParser(settings).parse('20 dollars for lunch')

        assert len(result.expenses) == 1
        expense = result.expenses[0]
        assert expense.amount == 20.0
        assert expense.category == 'Misc'
        assert expense.currency == 'USD'
        assert expense.title == '20 dollars for lunch'
        assert result.month_context == 'current'

    def test_truncates_title(self, settings):
        text = 'a very long description of something I bought at the store today 9'
        expense = FallbackParser(settings).parse(text).expenses[0]
        assert len(expense.title) <= settings.FALLBACK_TITLE_LENGTH
        assert expense.amount == 9.0

    def test_no_number(self, settings):
        expense = FallbackParser(settings).parse('bought some stuff').expenses[0]
        assert expense.amount == 0.0
        assert expense.title == 'bought some stuff'

    def test_decimal_comma(self, settings):
        expense = FallbackParser(settings).parse('1,5 euros for coffee').expenses[0]
        assert expense.amount == 1.5

    def test_blank_text(self, settings):
        expense = FallbackParser(settings).parse('   ').expenses[0]
        assert expense.title == 'Unknown expense'


class TestExtractionService:
    async def test_well_formed_reply(self, keyed_settings):
        calls = []
        client = mock_llm_client({
            'expenses': [
                {'amount': 12, 'currency': 'USD', 'category': 'Food', 'title': 'Pizza'},
                {'amount': 30, 'currency': 'usd', 'category': 'Transport', 'title': 'Uber'},
            ],
            'month_context': 'current',
        }, calls=calls)
        service = ExtractionService(keyed_settings, http_client=client)

        result = await service.extract('12 pizza and 30 uber', 'u1')

        assert [e.category for e in result.expenses] == ['Food', 'Transport']
        assert [e.amount for e in result.expenses] == [12.0, 30.0]
        assert result.expenses[1].currency == 'USD'
        assert result.raw_text == '12 pizza and 30 uber'
        assert all(e.occurred_at for e in result.expenses)

        assert len(calls) == 1
        assert calls[0].url.path == '/v1/chat/completions'
        assert calls[0].headers['Authorization'] == 'Bearer test-key'
        body = json.loads(calls[0].content)
        assert body['messages'][1]['content'] == '12 pizza and 30 uber'

    async def test_off_taxonomy_values_are_normalized(self, keyed_settings):
        client = mock_llm_client({'expenses': [
            {'amount': -8.5, 'currency': 'dollars', 'category': 'Coffee', 'title': 'Latte'},
        ]})
        result = await ExtractionService(keyed_settings, http_client=client).extract('latte 8.5')

        expense = result.expenses[0]
        assert expense.amount == 8.5
        assert expense.currency == 'USD'
        assert expense.category == 'Misc'

    async def test_month_context_passes_through(self, keyed_settings):
        client = mock_llm_client({
            'expenses': [{'amount': 50, 'category': 'Bills', 'title': 'Electricity'}],
            'month_context': 'September',
        })
        result = await ExtractionService(keyed_settings, http_client=client).extract('50 electricity last september')
        assert result.month_context == 'September'

    async def test_fenced_reply(self, keyed_settings):
        fenced = '```json\n' + json.dumps({'expenses': [{'amount': 5, 'category': 'Food', 'title': 'Tea'}]}) + '\n```'
        result = await ExtractionService(keyed_settings, http_client=mock_llm_client(fenced)).extract('tea 5')
        assert result.expenses[0].title == 'Tea'
        assert result.expenses[0].category == 'Food'

    async def test_empty_list_yields_unknown_expense(self, keyed_settings):
        client = mock_llm_client({'expenses': []})
        result = await ExtractionService(keyed_settings, http_client=client).extract('hello')

        assert len(result.expenses) == 1
        assert result.expenses[0].title == 'Unknown expense'
        assert result.expenses[0].amount == 0.0

    async def test_non_json_reply_falls_back(self, keyed_settings):
        client = mock_llm_client('Sure! You spent 20 dollars.')
        result = await ExtractionService(keyed_settings, http_client=client).extract('20 dollars for lunch')

        assert len(result.expenses) == 1
        assert result.expenses[0].amount == 20.0
        assert result.expenses[0].category == 'Misc'

    async def test_missing_expenses_key_falls_back(self, keyed_settings):
        client = mock_llm_client({'items': [{'amount': 3}]})
        result = await ExtractionService(keyed_settings, http_client=client).extract('3 for gum')
        assert result.expenses[0].title == '3 for gum'

    async def test_service_error_falls_back(self, keyed_settings):
        client = mock_llm_client(status_code=500)
        result = await ExtractionService(keyed_settings, http_client=client).extract('20 dollars for lunch')
        assert result.expenses[0].amount == 20.0
        assert result.expenses[0].category == 'Misc'

    async def test_no_api_key_skips_the_model(self, settings):
        calls = []
        client = mock_llm_client({'expenses': []}, calls=calls)
        result = await ExtractionService(settings, http_client=client).extract('7 bus ticket')

        assert calls == []
        assert result.expenses[0].amount == 7.0
