"""Tests for DbChatMemory."""

import json
import logging

import pytest
from sqlalchemy.exc import OperationalError

from src.db.connection import create_session_factory
from src.db.models import ChatMessage, MessageRole
from src.errors import ValidationError
from src.models.messages import AssistantMessage, SystemMessage, UserMessage
from src.services.chat_memory import MAX_CONTENT_LENGTH, DbChatMemory


def build_log_content(build: int, text: str = "log") -> str:
    return json.dumps(
        {"type": "build_log_data", "job_name": "job", "build_number": build, "data": {"raw_log": text}},
        separators=(",", ":"),
    )


def rows(session_factory, conversation_id: str) -> list[ChatMessage]:
    with session_factory() as db:
        return (
            db.query(ChatMessage)
            .filter(ChatMessage.conversation_id == conversation_id)
            .order_by(ChatMessage.timestamp, ChatMessage.id)
            .all()
        )


class TestConstruction:

    def test_rejects_missing_session_factory(self):
        with pytest.raises(ValidationError):
            DbChatMemory(None)

    @pytest.mark.parametrize("size", [0, -1])
    def test_rejects_non_positive_window(self, session_factory, size):
        with pytest.raises(ValidationError, match="max_messages_per_conversation"):
            DbChatMemory(session_factory, max_messages_per_conversation=size)

    def test_rejects_non_positive_content_cap(self, session_factory):
        with pytest.raises(ValidationError, match="max_content_length"):
            DbChatMemory(session_factory, max_content_length=0)

    def test_default_cap(self):
        assert MAX_CONTENT_LENGTH == 10_000_000


class TestAdd:

    def test_persists_rows_in_given_order(self, memory, session_factory):
        written = memory.add("job-A", [
            UserMessage("first", {"build_number": 5}),
            AssistantMessage("second", {"build_number": 5}),
        ])
        assert written == 2
        stored = rows(session_factory, "job-A")
        assert [r.content for r in stored] == ["first", "second"]
        assert [r.message_type for r in stored] == ["USER", "ASSISTANT"]
        assert all(r.job_name == "job-A" and r.build_number == 5 for r in stored)

    def test_timestamps_strictly_increase(self, memory, session_factory):
        memory.add("job-A", [UserMessage(str(i)) for i in range(20)])
        stamps = [r.timestamp for r in rows(session_factory, "job-A")]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)

    def test_metadata_round_trips(self, memory, session_factory):
        memory.add("job-A", [UserMessage("x", {"build_number": 3, "stage": "scan"})])
        (row,) = rows(session_factory, "job-A")
        assert json.loads(row.metadata_json) == {"build_number": 3, "stage": "scan"}

    def test_empty_metadata_stored_as_null(self, memory, session_factory):
        memory.add("job-A", [UserMessage("x")])
        assert rows(session_factory, "job-A")[0].metadata_json is None

    def test_missing_build_number_defaults_to_zero(self, memory, session_factory, caplog):
        with caplog.at_level(logging.WARNING):
            memory.add("job-A", [UserMessage("x")])
        assert rows(session_factory, "job-A")[0].build_number == 0
        assert "Missing build_number" in caplog.text

    def test_malformed_build_number_stored_as_zero(self, memory, session_factory, caplog):
        with caplog.at_level(logging.WARNING):
            memory.add("job-A", [UserMessage("x", {"build_number": "abc"})])
        assert rows(session_factory, "job-A")[0].build_number == 0
        assert "Invalid build_number" in caplog.text

    def test_numeric_string_build_number(self, memory, session_factory):
        memory.add("job-A", [UserMessage("x", {"build_number": "12"})])
        assert rows(session_factory, "job-A")[0].build_number == 12

    def test_null_content_is_skipped(self, memory, session_factory, caplog):
        with caplog.at_level(logging.WARNING):
            written = memory.add("job-A", [UserMessage(None), UserMessage("kept")])
        assert written == 1
        assert [r.content for r in rows(session_factory, "job-A")] == ["kept"]
        assert "content is null" in caplog.text

    @pytest.mark.parametrize("messages", [[], None])
    def test_empty_batch_is_noop(self, memory, session_factory, messages):
        assert memory.add("job-D", messages) == 0
        assert rows(session_factory, "job-D") == []

    def test_none_conversation_id_rejected(self, memory):
        with pytest.raises(ValidationError, match="Conversation ID"):
            memory.add(None, [UserMessage("x")])

    def test_batch_is_atomic(self, session_factory):
        def failing_session():
            session = session_factory()

            def commit():
                session.flush()
                raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

            session.commit = commit
            return session

        memory = DbChatMemory(failing_session)
        with pytest.raises(OperationalError):
            memory.add("job-A", [UserMessage("a"), UserMessage("b")])
        assert rows(session_factory, "job-A") == []


class TestTruncation:

    def test_oversized_content_is_truncated(self, session_factory, caplog):
        memory = DbChatMemory(session_factory, max_content_length=10)
        with caplog.at_level(logging.WARNING):
            memory.add("job-B", [UserMessage("0123456789ABCDEF")])
        assert rows(session_factory, "job-B")[0].content == "0123456789"
        assert "from 16 to 10 characters" in caplog.text

    def test_content_at_cap_is_unchanged(self, session_factory, caplog):
        memory = DbChatMemory(session_factory, max_content_length=10)
        with caplog.at_level(logging.WARNING):
            memory.add("job-B", [UserMessage("0123456789")])
        assert rows(session_factory, "job-B")[0].content == "0123456789"
        assert "Truncating" not in caplog.text

    def test_default_cap_scenario(self, memory, session_factory):
        memory.add("job-B", [UserMessage("a" * 11_000_000, {})])
        assert len(rows(session_factory, "job-B")[0].content) == 10_000_000


class TestGet:

    def test_returns_messages_in_insertion_order(self, memory):
        memory.add("job-A", [UserMessage("log1", {"build_number": 5})])
        memory.add("job-A", [UserMessage("log2", {"build_number": 5})])
        result = memory.get("job-A", 10)
        assert [m.content for m in result] == ["log1", "log2"]
        assert all(m.build_number == 5 for m in result)

    def test_returns_most_recent_suffix(self, memory):
        memory.add("job-A", [UserMessage(f"m{i}") for i in range(8)])
        assert [m.content for m in memory.get("job-A", 3)] == ["m5", "m6", "m7"]

    @pytest.mark.parametrize("last_n", [0, -5])
    def test_non_positive_window_returns_empty(self, memory, last_n):
        memory.add("job-A", [UserMessage("x")])
        assert memory.get("job-A", last_n) == []

    def test_unknown_conversation_returns_empty(self, memory):
        assert memory.get("nobody", 10) == []

    def test_roles_and_metadata_restored(self, memory):
        memory.add("job-A", [
            UserMessage("q", {"build_number": 1, "stage": "build"}),
            AssistantMessage("a", {"build_number": 1}),
        ])
        user, assistant = memory.get("job-A", 10)
        assert user.role is MessageRole.USER
        assert user.metadata.to_dict() == {"build_number": 1, "stage": "build"}
        assert assistant.role is MessageRole.ASSISTANT

    def test_system_messages_never_returned(self, memory, caplog):
        memory.add("job-A", [UserMessage("u"), SystemMessage("s"), AssistantMessage("a")])
        with caplog.at_level(logging.WARNING):
            result = memory.get("job-A", 10)
        assert [m.content for m in result] == ["u", "a"]
        assert all(m.role is not MessageRole.SYSTEM for m in result)

    def test_unknown_role_rows_dropped(self, memory, session_factory, caplog):
        memory.add("job-A", [UserMessage("u")])
        with session_factory() as db:
            db.add(ChatMessage(
                conversation_id="job-A", job_name="job-A", message_type="TOOL",
                content="t", timestamp="9999-01-01T00:00:00.000000+00:00",
            ))
            db.commit()
        with caplog.at_level(logging.ERROR):
            result = memory.get("job-A", 10)
        assert [m.content for m in result] == ["u"]
        assert "Invalid message type: TOOL" in caplog.text

    def test_corrupt_metadata_tolerated(self, memory, session_factory, caplog):
        with session_factory() as db:
            db.add(ChatMessage(
                conversation_id="job-A", job_name="job-A", message_type="USER",
                content="x", metadata_json="{broken",
            ))
            db.commit()
        with caplog.at_level(logging.WARNING):
            (message,) = memory.get("job-A", 10)
        assert message.metadata.to_dict() == {}
        assert "Corrupted metadata_json" in caplog.text

    def test_does_not_mutate(self, memory, session_factory):
        memory.add("job-A", [UserMessage("x")])
        before = [(r.id, r.content) for r in rows(session_factory, "job-A")]
        memory.get("job-A", 10)
        assert [(r.id, r.content) for r in rows(session_factory, "job-A")] == before

    def test_none_conversation_id_rejected(self, memory):
        with pytest.raises(ValidationError):
            memory.get(None, 10)


class TestClear:

    def test_clear_removes_conversation(self, memory):
        memory.add("job-C", [UserMessage("a"), UserMessage("b")])
        assert memory.clear("job-C") == 2
        assert memory.get("job-C", 100) == []

    def test_clear_leaves_other_conversations(self, memory):
        memory.add("job-C", [UserMessage("a")])
        memory.add("job-E", [UserMessage("b")])
        memory.clear("job-C")
        assert [m.content for m in memory.get("job-E", 100)] == ["b"]

    def test_clear_unknown_conversation(self, memory):
        assert memory.clear("nobody") == 0

    def test_none_conversation_id_rejected(self, memory):
        with pytest.raises(ValidationError):
            memory.clear(None)


class TestHasTwoBuildLogs:

    def test_lifecycle_scenario(self, memory):
        memory.add("job-A", [UserMessage(build_log_content(5, "log1"), {"build_number": 5})])
        assert memory.has_two_build_logs("job-A", 5) is False
        memory.add("job-A", [UserMessage(build_log_content(5, "log2"), {"build_number": 5})])
        assert memory.has_two_build_logs("job-A", 5) is True
        assert [json.loads(m.content)["data"]["raw_log"] for m in memory.get("job-A", 10)] == [
            "log1", "log2",
        ]

    @pytest.mark.parametrize("count,expected", [(0, False), (1, False), (2, True), (3, False)])
    def test_exactly_two(self, memory, count, expected):
        memory.add("job-A", [
            UserMessage(build_log_content(9), {"build_number": 9}) for _ in range(count)
        ])
        assert memory.has_two_build_logs("job-A", 9) is expected

    def test_plain_messages_do_not_count(self, memory):
        memory.add("job-A", [
            UserMessage("log1", {"build_number": 5}),
            UserMessage("log2", {"build_number": 5}),
        ])
        assert memory.has_two_build_logs("job-A", 5) is False

    def test_other_log_types_do_not_count(self, memory):
        other = json.dumps({"type": "code_changes", "build_number": 5}, separators=(",", ":"))
        memory.add("job-A", [
            UserMessage(build_log_content(5), {"build_number": 5}),
            UserMessage(other, {"build_number": 5}),
        ])
        assert memory.has_two_build_logs("job-A", 5) is False

    def test_scoped_to_build_and_conversation(self, memory):
        memory.add("job-A", [UserMessage(build_log_content(5), {"build_number": 5})])
        memory.add("job-A", [UserMessage(build_log_content(6), {"build_number": 6})])
        memory.add("job-B", [UserMessage(build_log_content(5), {"build_number": 5})])
        assert memory.has_two_build_logs("job-A", 5) is False

    def test_negative_build_rejected(self, memory):
        with pytest.raises(ValidationError, match="non-negative"):
            memory.has_two_build_logs("job-A", -1)

    def test_none_conversation_id_rejected(self, memory):
        with pytest.raises(ValidationError):
            memory.has_two_build_logs(None, 1)


class TestRetentionSupport:

    def test_conversation_ids(self, memory):
        memory.add("job-A", [UserMessage("a"), UserMessage("b")])
        memory.add("job-B", [UserMessage("c")])
        assert sorted(memory.conversation_ids()) == ["job-A", "job-B"]

    def test_count(self, memory):
        memory.add("job-A", [UserMessage("a"), UserMessage("b")])
        assert memory.count("job-A") == 2
        assert memory.count("nobody") == 0

    def test_prune_keeps_most_recent(self, memory):
        memory.add("job-A", [UserMessage(f"m{i}") for i in range(8)])
        assert memory.prune("job-A", keep=3) == 5
        assert [m.content for m in memory.get("job-A", 100)] == ["m5", "m6", "m7"]

    def test_prune_defaults_to_configured_window(self, memory):
        memory.add("job-A", [UserMessage(f"m{i}") for i in range(8)])
        memory.prune("job-A")
        assert memory.count("job-A") == memory.max_messages_per_conversation == 5

    def test_prune_under_window_is_noop(self, memory):
        memory.add("job-A", [UserMessage("a")])
        assert memory.prune("job-A", keep=3) == 0
        assert memory.count("job-A") == 1

    def test_prune_counts_system_rows(self, memory):
        memory.add("job-A", [UserMessage("u1"), SystemMessage("s"), UserMessage("u2")])
        memory.prune("job-A", keep=2)
        assert memory.count("job-A") == 2
        assert [m.content for m in memory.get("job-A", 10)] == ["u2"]

    def test_prune_rejects_non_positive_keep(self, memory):
        with pytest.raises(ValidationError):
            memory.prune("job-A", keep=0)

    def test_prune_spares_message_added_during_sweep(self, tmp_path):
        factory = create_session_factory(f"sqlite:///{tmp_path / 'retention.db'}")
        producer = DbChatMemory(factory)
        producer.add("job-A", [UserMessage(f"m{i}") for i in range(4)])

        def interleaving_session():
            session = factory()
            real_execute = session.execute
            calls = []

            def execute(statement, *args, **kwargs):
                calls.append(statement)
                if len(calls) == 2:
                    producer.add("job-A", [UserMessage("newest")])
                return real_execute(statement, *args, **kwargs)

            session.execute = execute
            return session

        sweeper = DbChatMemory(interleaving_session)
        assert sweeper.prune("job-A", keep=2) == 2
        assert [m.content for m in producer.get("job-A", 10)] == ["m2", "m3", "newest"]


class TestStorageErrors:

    def test_errors_propagate(self, engine, memory):
        ChatMessage.__table__.drop(engine)
        with pytest.raises(OperationalError):
            memory.add("job-A", [UserMessage("x")])
