"""Tests for chat persistence and replies."""
import asyncio

import pytest

from app.auth import AuthService
from app.chat_tracking import ChatService, chat_title_from_message, format_recent_history
from app.config import AISettings
from app.models import InvalidInputError
from services.analyzer import SafeMenuAnalyzer

pytestmark = pytest.mark.usefixtures("db_tables")


@pytest.fixture
def user_id():
    return AuthService.create_user("chatty@example.com", "secret1", "5551234567").id


@pytest.fixture
def analyzer():
    return SafeMenuAnalyzer(AISettings(available=False))


def test_format_recent_history_keeps_last_four():
    messages = [{'role': "user" if i % 2 == 0 else "assistant", 'content': f"m{i}"} for i in range(6)]
    assert format_recent_history(messages) == "user: m2\nassistant: m3\nuser: m4\nassistant: m5"
    assert format_recent_history([]) == ""


def test_chat_title_from_message():
    assert chat_title_from_message("Is the soup safe?") == "Is the soup safe?"
    assert chat_title_from_message("x" * 60) == "x" * 50 + "..."
    assert chat_title_from_message("   ") == "Food Safety Discussion"


def test_start_chat_stores_both_messages(user_id, analyzer, peanut_profile):
    chat = asyncio.run(ChatService.start_chat(user_id, "Is satay safe for me?", analyzer, peanut_profile))
    assert chat['title'] == "Is satay safe for me?"
    assert chat['message_count'] == 2
    assert [m['role'] for m in chat['messages']] == ["user", "assistant"]
    assert "1 known allergies" in chat['messages'][1]['content']


def test_send_message_passes_recent_history(user_id, ai_settings, make_fake_client):
    client = make_fake_client(replies=["First answer", "Second answer"])
    analyzer = SafeMenuAnalyzer(ai_settings, client=client)
    chat = asyncio.run(ChatService.start_chat(user_id, "Hello", analyzer, None))

    reply = asyncio.run(ChatService.send_message(chat['id'], user_id, "Any nuts?", analyzer, None))
    assert reply['message']['content'] == "Second answer"
    assert reply['message_count'] == 4
    assert "user: Hello\nassistant: First answer" in client.calls[1]['messages'][1]['content']

    stored = ChatService.get_chat_by_id(chat['id'], user_id)
    assert [m['content'] for m in stored['messages']] == ["Hello", "First answer", "Any nuts?", "Second answer"]


def test_blank_message_is_rejected(user_id, analyzer):
    with pytest.raises(InvalidInputError):
        asyncio.run(ChatService.start_chat(user_id, " ", analyzer, None))


def test_archived_chat_is_hidden_and_closed(user_id, analyzer):
    chat = asyncio.run(ChatService.start_chat(user_id, "Hello", analyzer, None))
    assert ChatService.get_chat_history(user_id)['pagination']['total'] == 1

    assert ChatService.archive_chat(chat['id'], user_id)
    assert ChatService.get_chat_history(user_id)['chats'] == []
    assert asyncio.run(ChatService.send_message(chat['id'], user_id, "Still there?", analyzer, None)) is None


def test_chats_are_owner_scoped(user_id, analyzer):
    other = AuthService.create_user("other@example.com", "secret1", "5559876543").id
    chat = asyncio.run(ChatService.start_chat(user_id, "Hello", analyzer, None))
    assert ChatService.get_chat_by_id(chat['id'], other) is None
    assert not ChatService.archive_chat(chat['id'], other)
