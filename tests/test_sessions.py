from gemcord.db import Database
from gemcord.models import ROLE_FUNCTION, ROLE_MODEL, Part, ToolCall, ToolResult, Turn
from gemcord.sessions import SqliteSessionStore


def _db(tmp_path) -> Database:
    db = Database(tmp_path / "gemcord.db")
    db.initialize()
    return db


def test_non_replay_sessions_start_empty_and_are_not_saved(tmp_path):
    db = _db(tmp_path)
    db.append_session_turns("channel-1", [Turn.user_text("old")])
    store = SqliteSessionStore(db)

    session = store.get_or_create("channel-1", replay_history=False)
    assert session.history == []

    store.save(session, [Turn.user_text("new"), Turn.model_text("reply")])
    assert len(db.get_session_turns("channel-1", limit=10)) == 1


def test_replay_sessions_load_and_extend_history(tmp_path):
    db = _db(tmp_path)
    store = SqliteSessionStore(db)

    session = store.get_or_create("thread-1", replay_history=True)
    store.save(session, [Turn.user_text("q"), Turn.model_text("a")])

    assert [t.role for t in session.history] == ["user", ROLE_MODEL]
    reloaded = store.get_or_create("thread-1", replay_history=True)
    assert [t.parts[0].text for t in reloaded.history] == ["q", "a"]


def test_truncated_history_starts_at_a_user_turn(tmp_path):
    db = _db(tmp_path)
    db.append_session_turns(
        "thread-1",
        [
            Turn.user_text("q1"),
            Turn(role=ROLE_MODEL, parts=[Part(tool_call=ToolCall(name="get_current_time"))]),
            Turn(role=ROLE_FUNCTION, parts=[Part(tool_result=ToolResult.success("get_current_time", {}, "ok"))]),
            Turn.model_text("a1"),
            Turn.user_text("q2"),
            Turn.model_text("a2"),
        ],
    )
    store = SqliteSessionStore(db, history_turns=4)

    session = store.get_or_create("thread-1", replay_history=True)

    assert [t.parts[0].text for t in session.history] == ["q2", "a2"]
