from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from gemcord.conversation import ConversationResult, LoopOutcome
from gemcord.db import Database
from gemcord.errors import DeliveryError
from gemcord.models import ActionType, Turn, WebhookEvent
from gemcord.workflows import WorkflowCreate, WorkflowProcessor, create_workflow, derive_push_event


def _payload(**overrides: object) -> dict:
    payload = {
        "ref": "refs/heads/main",
        "repository": {"full_name": "a/b"},
        "pusher": {"name": "octocat"},
        "commits": [{"id": "abcdef1234", "message": "Fix login"}],
        "head_commit": {"id": "abcdef1234", "message": "Fix login", "url": "https://example.com/c/abcdef1"},
        "compare": "https://example.com/compare",
    }
    payload.update(overrides)
    return payload


def _event(payload: dict, event_name: str = "push") -> WebhookEvent:
    return WebhookEvent(signature="sha256=x", raw_body=b"{}", payload=payload, event_name=event_name)


def _request(**overrides: object) -> WorkflowCreate:
    data = {
        "guildId": "guild-1",
        "workflowName": "Release notes",
        "triggerType": "REPO_PUSH",
        "triggerConfig": {"repo": "a/b", "branch": "main"},
        "actionType": "PROMPT_GENERATION",
        "actionConfig": {"targetChannelId": "chan-1", "promptTemplate": "Summarize:\n{{commits}}"},
        "createdBy": "user-1",
    }
    data.update(overrides)
    return WorkflowCreate.model_validate(data)


def _completed(text: str) -> ConversationResult:
    return ConversationResult(LoopOutcome.COMPLETED, text, [Turn.user_text("p"), Turn.model_text(text)], 1)


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "gemcord.db")
    database.initialize()
    return database


def test_derive_push_event_strips_branch_prefix():
    push = derive_push_event(_payload())

    assert push is not None
    assert push.repo == "a/b"
    assert push.branch == "main"
    assert push.ref == "refs/heads/main"
    assert push.pusher == "octocat"
    assert push.trigger_attributes() == {"repo": "a/b", "branch": "main"}


def test_derive_push_event_keeps_tag_refs_whole():
    push = derive_push_event(_payload(ref="refs/tags/v1.0"))
    assert push is not None
    assert push.branch == "refs/tags/v1.0"


@pytest.mark.parametrize(
    "overrides",
    [
        {"deleted": True},
        {"repository": {}},
        {"repository": None},
        {"ref": ""},
    ],
)
def test_derive_push_event_rejects_unmatchable_payloads(overrides):
    assert derive_push_event(_payload(**overrides)) is None


def test_workflow_create_requires_trigger_and_action_fields():
    with pytest.raises(ValidationError) as excinfo:
        _request(triggerConfig={"repo": "a/b"}, actionConfig={"promptTemplate": "x"})

    message = str(excinfo.value)
    assert "triggerConfig.branch" in message
    assert "actionConfig.targetChannelId" in message


def test_workflow_create_rejects_server_assigned_fields():
    with pytest.raises(ValidationError):
        _request(workflowId="abc")


def test_create_workflow_persists_and_confirms(db):
    workflow_id, message = create_workflow(db, _request())

    assert message == f'Successfully created workflow "Release notes" with ID: {workflow_id}'
    stored = db.get_workflow(workflow_id)
    assert stored.action_type is ActionType.PROMPT_GENERATION
    assert stored.is_enabled


@pytest.mark.asyncio
async def test_matching_workflow_posts_generated_text(db):
    workflow_id, _ = create_workflow(db, _request())
    conversation = MagicMock()
    conversation.run = AsyncMock(return_value=_completed("Release summary"))
    poster = MagicMock()
    poster.post = AsyncMock()
    processor = WorkflowProcessor(db=db, conversation=conversation, poster=poster)

    delivered = await processor.process(_event(_payload()))

    assert delivered == 1
    history = conversation.run.call_args.args[0]
    assert history[0].parts[0].text == "Summarize:\n- abcdef1 Fix login"
    assert conversation.run.call_args.kwargs["session_id"] == f"workflow:{workflow_id}"
    poster.post.assert_awaited_once_with("chan-1", "Release summary")


@pytest.mark.asyncio
async def test_deleted_branch_push_never_queries_workflows():
    db = MagicMock()
    conversation = MagicMock()
    conversation.run = AsyncMock()
    processor = WorkflowProcessor(db=db, conversation=conversation, poster=MagicMock())

    delivered = await processor.process(_event(_payload(deleted=True)))

    assert delivered == 0
    db.find_matching_workflows.assert_not_called()
    conversation.run.assert_not_called()


@pytest.mark.asyncio
async def test_non_push_events_are_ignored():
    db = MagicMock()
    processor = WorkflowProcessor(db=db, conversation=MagicMock(), poster=MagicMock())

    assert await processor.process(_event(_payload(), event_name="ping")) == 0
    db.find_matching_workflows.assert_not_called()


@pytest.mark.asyncio
async def test_disabled_and_other_branch_workflows_do_not_run(db):
    disabled_id, _ = create_workflow(db, _request(isEnabled=False))
    create_workflow(db, _request(triggerConfig={"repo": "a/b", "branch": "dev"}))
    conversation = MagicMock()
    conversation.run = AsyncMock(return_value=_completed("x"))
    processor = WorkflowProcessor(db=db, conversation=conversation, poster=MagicMock())

    assert await processor.process(_event(_payload())) == 0
    conversation.run.assert_not_called()
    assert db.get_workflow(disabled_id).is_enabled is False


@pytest.mark.asyncio
async def test_one_failing_workflow_does_not_stop_the_others(db):
    create_workflow(db, _request(workflowName="first", actionConfig={"targetChannelId": "bad", "promptTemplate": "p"}))
    create_workflow(db, _request(workflowName="second", actionConfig={"targetChannelId": "good", "promptTemplate": "p"}))
    conversation = MagicMock()
    conversation.run = AsyncMock(return_value=_completed("text"))

    async def post(channel_id, text):  # noqa: ANN001, ANN202
        if channel_id == "bad":
            raise RuntimeError("Discord API error: 403")

    poster = MagicMock()
    poster.post = AsyncMock(side_effect=post)
    processor = WorkflowProcessor(db=db, conversation=conversation, poster=poster)

    delivered = await processor.process(_event(_payload()))

    assert delivered == 1
    assert poster.post.await_count == 2


@pytest.mark.asyncio
async def test_unfinished_conversation_is_not_posted(db):
    create_workflow(db, _request())
    conversation = MagicMock()
    conversation.run = AsyncMock(
        return_value=ConversationResult(LoopOutcome.MAX_TURNS_EXCEEDED, "", [], 8)
    )
    poster = MagicMock()
    poster.post = AsyncMock()
    processor = WorkflowProcessor(db=db, conversation=conversation, poster=poster)

    assert await processor.process(_event(_payload())) == 0
    poster.post.assert_not_called()


@pytest.mark.asyncio
async def test_delivery_failure_is_logged_with_error_details(db, caplog):
    workflow_id, _ = create_workflow(db, _request())
    conversation = MagicMock()
    conversation.run = AsyncMock(return_value=_completed("text"))
    poster = MagicMock()
    poster.post = AsyncMock(side_effect=DeliveryError("Discord API error: 403", "chan-1", 403))
    processor = WorkflowProcessor(db=db, conversation=conversation, poster=poster)

    with caplog.at_level("ERROR", logger="gemcord.workflows"):
        delivered = await processor.process(_event(_payload()))

    assert delivered == 0
    record = next(r for r in caplog.records if workflow_id in r.getMessage())
    assert "DELIVERY_FAILED" in record.getMessage()
    assert "'status_code': 403" in record.getMessage()
    assert record.exc_info is None
