import json

import httpx
import pytest

from spendwise.config import AppConfig
from spendwise.database import DatabaseManager
from spendwise.managers import ExpenseManager, CorrectionManager


@pytest.fixture
def settings(tmp_path):
    return AppConfig(
        DB_FILE=str(tmp_path / 'test.db'),
        UPLOAD_DIR=str(tmp_path / 'audio'),
        OPENAI_API_KEY='',
        OPENAI_BASE_URL='https://llm.test/v1',
        MOCK_TRANSCRIPTION='',
        API_BASE_URL='http://api.test',
        ADDED_DISMISS_SECONDS=0.1,
        THANKS_DISMISS_SECONDS=0.1,
    )


@pytest.fixture
def keyed_settings(settings):
    settings.OPENAI_API_KEY = 'test-key'
    return settings


@pytest.fixture
async def expense_manager(settings):
    await DatabaseManager(settings.DB_FILE).initialize_database()
    return ExpenseManager(settings.DB_FILE)


@pytest.fixture
def correction_manager(settings, expense_manager):
    return CorrectionManager(settings.DB_FILE)


def chat_reply(payload) -> dict:
    """Body of an OpenAI-style chat completion whose message is ``payload``."""
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return {'choices': [{'message': {'role': 'assistant', 'content': content}}]}


def mock_llm_client(payload=None, status_code=200, calls=None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if status_code != 200:
            return httpx.Response(status_code, json={'error': 'unavailable'})
        return httpx.Response(200, json=chat_reply(payload))

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
