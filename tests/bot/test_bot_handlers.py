"""
Tests for the Telegram front-end handlers.

Handlers are called directly with mocked aiogram objects and a real in-memory
FSM storage.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from aiogram.filters import CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from deepsearch.bot.filters import AdminFilter
from deepsearch.bot.handlers.admin import parse_telegram_id
from deepsearch.bot.handlers.user import cmd_start, dialog_handler, split_text
from deepsearch.core.config import Settings
from deepsearch.core.models.chat import ChatMessage
from deepsearch.core.models.user import User
from deepsearch.core.services.deep_search_service import FinishEvent, TextDelta


class StubDeepSearch:

    def __init__(self, answer="Ответ со ссылками."):
        self.answer = answer
        self.calls = []

    async def stream(self, messages, on_finish=None):
        self.calls.append(messages)
        yield TextDelta(text=self.answer)
        finish = FinishEvent(
            text=self.answer,
            steps=1,
            finish_reason="stop",
            response_messages=[ChatMessage(role="assistant", content=self.answer)],
        )
        if on_finish is not None:
            await on_finish(finish)
        yield finish


def make_message(text):
    message = AsyncMock()
    message.text = text
    message.chat = SimpleNamespace(id=100)
    return message


def make_bot():
    return SimpleNamespace(id=1, send_chat_action=AsyncMock(return_value=True))


def make_state():
    return FSMContext(storage=MemoryStorage(), key=StorageKey(bot_id=1, chat_id=100, user_id=100))


SETTINGS = Settings(DAILY_REQUEST_LIMIT=2, TIMEZONE="UTC")


class TestDialogHandler:
    """Test free-text questions in the bot."""

    @pytest.mark.asyncio
    async def test_answer_is_sent_and_chat_is_saved(self, fake_db):
        # Arrange
        fake_db.add_user("u1")
        state = make_state()
        deep_search = StubDeepSearch()
        message = make_message("Что нового в Python?")

        # Act
        await dialog_handler(message, make_bot(), state, User(id="u1"), fake_db, deep_search, SETTINGS)

        # Assert
        message.answer.assert_awaited_once_with("Ответ со ссылками.", parse_mode=None)
        chat_id = (await state.get_data())["chat_id"]
        assert [m["role"] for m in fake_db.chat_messages(chat_id)] == ["user", "assistant"]
        assert len(fake_db.user_requests) == 1

    @pytest.mark.asyncio
    async def test_follow_up_question_includes_history(self, fake_db):
        fake_db.add_user("u1")
        state = make_state()
        deep_search = StubDeepSearch()
        user = User(id="u1")

        await dialog_handler(make_message("Первый вопрос"), make_bot(), state, user, fake_db, deep_search, SETTINGS)
        await dialog_handler(make_message("Уточнение"), make_bot(), state, user, fake_db, deep_search, SETTINGS)

        assert [m.content for m in deep_search.calls[1]] == ["Первый вопрос", "Ответ со ссылками.", "Уточнение"]

    @pytest.mark.asyncio
    async def test_quota_exhausted_is_reported(self, fake_db):
        # Arrange
        fake_db.add_user("u1")
        fake_db.add_requests("u1", 2)
        deep_search = StubDeepSearch()
        message = make_message("Ещё вопрос")

        # Act
        await dialog_handler(message, make_bot(), make_state(), User(id="u1"), fake_db, deep_search, SETTINGS)

        # Assert
        assert "Лимит на сегодня исчерпан" in message.answer.await_args.args[0]
        assert deep_search.calls == []
        assert fake_db.writes == []


class TestStart:

    @pytest.mark.asyncio
    async def test_name_with_markup_is_escaped(self):
        """Names are sent under HTML parse mode, so tags and ampersands are escaped."""
        # Arrange
        message = make_message("/start")
        user = User(id="u1", full_name="<Bob> & Co")

        # Act
        await cmd_start(message, make_state(), user)

        # Assert
        text = message.answer.await_args.args[0]
        assert text.startswith("Привет, &lt;Bob&gt; &amp; Co!")
        assert "<Bob>" not in text


class TestHelpers:

    def test_split_text(self):
        assert split_text("a" * 9, size=4) == ["aaaa", "aaaa", "a"]
        assert split_text("") == [""]

    @pytest.mark.parametrize("args, expected", [("12345", 12345), (" 42 ", 42), ("abc", None), (None, None)])
    def test_parse_telegram_id(self, args, expected):
        command = CommandObject(prefix="/", command="set_admin", args=args)

        assert parse_telegram_id(command) == expected

    @pytest.mark.asyncio
    async def test_admin_filter(self):
        admin = SimpleNamespace(from_user=SimpleNamespace(id=1))
        stranger = SimpleNamespace(from_user=SimpleNamespace(id=2))

        assert await AdminFilter()(admin, admin_ids=[1]) is True
        assert await AdminFilter()(stranger, admin_ids=[1]) is False
