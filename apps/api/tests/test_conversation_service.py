"""
Coach conversation storage: titles, limits, summaries and history reuse.
"""
from uuid import uuid4

import pytest

from core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from models import Conversation
from services import conversation_service
from services.conversation_service import NewMessage
from services.coach_modules.conversation import (
    build_conversation_summary,
    generate_title,
    should_refresh_summary,
    summarize_chat_history,
    truncate,
)
from services.coach_modules.intents import ChatHistoryMessage


def _pair(i):
    return [NewMessage(role="user", content=f"question {i}"), NewMessage(role="coach", content=f"answer {i}")]


class TestTextHelpers:
    def test_truncate(self):
        assert truncate("short", 10) == "short"
        assert truncate("a" * 60, 50) == "a" * 47 + "..."

    def test_title(self):
        assert generate_title("  How do I deload?  ") == "How do I deload?"
        assert len(generate_title("x" * 120)) == 50

    @pytest.mark.parametrize(
        "count, expected",
        [(4, False), (8, False), (10, False), (12, True), (14, False), (16, True)],
    )
    def test_summary_refresh_points(self, count, expected):
        assert should_refresh_summary(count) is expected

    def test_summary_keeps_first_exchange_and_recent_questions(self):
        messages = [ChatHistoryMessage(role="user", content="I want a bigger bench"),
                    ChatHistoryMessage(role="coach", content="Let's plan it")]
        for i in range(7):
            messages.append(ChatHistoryMessage(role="user", content=f"q{i}"))
            messages.append(ChatHistoryMessage(role="coach", content=f"a{i}"))

        summary = build_conversation_summary(messages)
        first_line, topics = summary.split("\n")
        assert first_line == "User: I want a bigger bench | Coach: Let's plan it"
        assert topics == "Topics discussed: q2; q3; q4; q5; q6"

    def test_summary_of_single_exchange(self):
        messages = [ChatHistoryMessage(role="user", content="hi"), ChatHistoryMessage(role="coach", content="hello")]
        assert build_conversation_summary(messages) == "User: hi | Coach: hello"
        assert build_conversation_summary([]) == ""

    def test_chat_history_summary_limits_pairs(self):
        history = [ChatHistoryMessage(role="user" if i % 2 == 0 else "coach", content=str(i)) for i in range(8)]
        assert summarize_chat_history(history, 1) == "User: 6\nCoach: 7"
        assert summarize_chat_history(history, 0) is None
        assert summarize_chat_history([], 3) is None
        assert summarize_chat_history(history).count("\n") == 5

    def test_system_notes_are_labelled(self):
        history = [ChatHistoryMessage(role="system", content="no session today")]
        assert summarize_chat_history(history, 2) == "System: no session today"


class TestConversationStore:
    def test_save_exchange_creates_titled_conversation(self, db_session, test_user):
        conversation_id = conversation_service.save_exchange(
            db_session,
            user_id=test_user.id,
            conversation_id=None,
            user_message="How should I progress my squat over the next eight weeks of training?",
            coach_response="Add a little weight each week.",
            intent="PROGRESS_CHECK",
        )
        db_session.commit()

        conversation = db_session.query(Conversation).filter(Conversation.id == conversation_id).one()
        assert conversation.title == "How should I progress my squat over the next ei..."
        assert [(m.position, m.role) for m in conversation.messages] == [(0, "user"), (1, "coach")]
        assert all(m.intent == "PROGRESS_CHECK" for m in conversation.messages)

    def test_append_continues_positions(self, db_session, test_user):
        conversation = conversation_service.create_conversation(db_session, test_user.id, "Plan", _pair(0))
        conversation_service.append_messages(db_session, conversation.id, test_user.id, _pair(1))
        db_session.commit()
        db_session.refresh(conversation)

        assert [m.position for m in conversation.messages] == [0, 1, 2, 3]
        assert conversation.summary is None

    def test_summary_written_once_conversation_is_long(self, db_session, test_user):
        conversation = conversation_service.create_conversation(db_session, test_user.id, "Plan", _pair(0))
        for i in range(1, 6):
            conversation = conversation_service.append_messages(db_session, conversation.id, test_user.id, _pair(i))
        # 12 messages
        assert conversation.summary.startswith("User: question 0 | Coach: answer 0")
        assert "question 5" in conversation.summary

    def test_limit_of_fifty(self, db_session, test_user):
        for i in range(conversation_service.MAX_CONVERSATIONS_PER_USER):
            db_session.add(Conversation(user_id=test_user.id, title=f"c{i}"))
        db_session.commit()

        with pytest.raises(BadRequestError) as exc:
            conversation_service.create_conversation(db_session, test_user.id, "one too many")
        assert "Maximum of 50 conversations" in exc.value.detail

    def test_ownership(self, db_session, test_user, make_user):
        conversation = conversation_service.create_conversation(db_session, test_user.id, "Mine")
        stranger = make_user()

        with pytest.raises(ForbiddenError):
            conversation_service.get_owned_conversation(db_session, conversation.id, stranger.id)
        with pytest.raises(NotFoundError):
            conversation_service.get_owned_conversation(db_session, uuid4(), test_user.id)
        with pytest.raises(ForbiddenError):
            conversation_service.append_messages(db_session, conversation.id, stranger.id, _pair(0))

    def test_list_is_paged(self, db_session, test_user):
        for i in range(3):
            conversation_service.create_conversation(db_session, test_user.id, f"c{i}")
        db_session.commit()

        page, total = conversation_service.list_conversations(db_session, test_user.id, page=2, limit=2)
        assert total == 3
        assert len(page) == 1

    def test_delete_removes_messages(self, db_session, test_user):
        conversation = conversation_service.create_conversation(db_session, test_user.id, "Bye", _pair(0))
        conversation_service.delete_conversation(db_session, conversation.id, test_user.id)
        db_session.commit()
        assert conversation_service.count_conversations(db_session, test_user.id) == 0


class TestChatHistory:
    def test_short_conversation(self, db_session, test_user):
        conversation = conversation_service.create_conversation(db_session, test_user.id, "Plan", _pair(0))
        db_session.commit()

        history = conversation_service.build_chat_history(db_session, conversation.id, test_user.id)
        assert [(m.role, m.content) for m in history] == [("user", "question 0"), ("coach", "answer 0")]

    def test_long_conversation_is_prefixed_with_summary(self, db_session, test_user):
        conversation = conversation_service.create_conversation(db_session, test_user.id, "Plan", _pair(0))
        for i in range(1, 6):
            conversation_service.append_messages(db_session, conversation.id, test_user.id, _pair(i))
        db_session.commit()

        history = conversation_service.build_chat_history(db_session, conversation.id, test_user.id)
        assert len(history) == 11
        assert history[0].content.startswith("[Previous conversation summary: ")
        assert history[1].content == "question 1"
        assert history[-1].content == "answer 5"

    def test_foreign_or_unknown_conversation_has_no_history(self, db_session, test_user, make_user):
        conversation = conversation_service.create_conversation(db_session, test_user.id, "Plan", _pair(0))
        stranger = make_user()
        assert conversation_service.build_chat_history(db_session, conversation.id, stranger.id) == []
        assert conversation_service.build_chat_history(db_session, uuid4(), test_user.id) == []
