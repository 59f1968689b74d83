"""Workflow definitions, push-event matching and workflow execution.

A workflow maps a trigger (currently a repository push) to an action
(currently: render a prompt, generate a reply, post it to a channel).
Webhook events arrive here after their signature has been checked and they
have passed through the event queue.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from gemcord.channel_poster import DiscordChannelPoster
from gemcord.conversation import ConversationLoop
from gemcord.db import Database
from gemcord.errors import GemcordError, WorkflowValidationError
from gemcord.models import ActionType, PushEvent, TriggerType, Turn, WebhookEvent, Workflow
from gemcord.templating import PushTemplateContext, render, unresolved_placeholders

LOGGER = logging.getLogger(__name__)

BRANCH_REF_PREFIX = "refs/heads/"

REQUIRED_TRIGGER_KEYS: dict[TriggerType, tuple[str, ...]] = {
    TriggerType.REPO_PUSH: ("repo", "branch"),
}
REQUIRED_ACTION_KEYS: dict[ActionType, tuple[str, ...]] = {
    ActionType.PROMPT_GENERATION: ("targetChannelId", "promptTemplate"),
}


def validate_workflow_config(
    trigger_type: TriggerType,
    trigger_config: dict[str, str],
    action_type: ActionType,
    action_config: dict[str, str],
) -> None:
    """Raise WorkflowValidationError when required config keys are missing or blank."""

    missing = [
        f"triggerConfig.{key}"
        for key in REQUIRED_TRIGGER_KEYS.get(trigger_type, ())
        if not trigger_config.get(key)
    ]
    missing += [
        f"actionConfig.{key}"
        for key in REQUIRED_ACTION_KEYS.get(action_type, ())
        if not action_config.get(key)
    ]
    if missing:
        raise WorkflowValidationError(f"Missing required workflow fields: {', '.join(missing)}", missing)


class WorkflowCreate(BaseModel):
    """Workflow creation request; server-assigned fields are not accepted."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    guild_id: str = Field(..., alias="guildId", min_length=1)
    workflow_name: str = Field(..., alias="workflowName", min_length=1)
    trigger_type: TriggerType = Field(..., alias="triggerType")
    trigger_config: dict[str, str] = Field(default_factory=dict, alias="triggerConfig")
    action_type: ActionType = Field(..., alias="actionType")
    action_config: dict[str, str] = Field(default_factory=dict, alias="actionConfig")
    created_by: str = Field(..., alias="createdBy", min_length=1)
    is_enabled: bool = Field(default=True, alias="isEnabled")

    @model_validator(mode="after")
    def _check_required_config(self) -> WorkflowCreate:
        validate_workflow_config(self.trigger_type, self.trigger_config, self.action_type, self.action_config)
        return self


def create_workflow(db: Database, request: WorkflowCreate) -> tuple[str, str]:
    """Persist a workflow and return (workflow_id, confirmation message)."""

    template = request.action_config.get("promptTemplate", "")
    unknown = [
        key for key in unresolved_placeholders(template, {}) if key not in PushTemplateContext.field_names()
    ]
    if request.trigger_type is TriggerType.REPO_PUSH and unknown:
        LOGGER.warning(
            "Workflow %r references placeholders a push event cannot fill: %s",
            request.workflow_name,
            ", ".join(unknown),
        )

    workflow_id = db.create_workflow(
        guild_id=request.guild_id,
        workflow_name=request.workflow_name,
        trigger_type=request.trigger_type,
        trigger_config=request.trigger_config,
        action_type=request.action_type,
        action_config=request.action_config,
        created_by=request.created_by,
        is_enabled=request.is_enabled,
    )
    LOGGER.info("Workflow created with ID: %s", workflow_id)
    return workflow_id, f'Successfully created workflow "{request.workflow_name}" with ID: {workflow_id}'


def derive_push_event(payload: dict[str, Any]) -> PushEvent | None:
    """Extract match attributes from a push payload.

    Returns None for branch deletions and for payloads without a repository
    name or ref; such events are not matched against anything.
    """
    if payload.get("deleted") is True:
        LOGGER.info("Skipping push event for deleted ref %r", payload.get("ref"))
        return None

    repository = payload.get("repository")
    repo = repository.get("full_name") if isinstance(repository, dict) else None
    ref = payload.get("ref")
    if not isinstance(repo, str) or not repo or not isinstance(ref, str) or not ref:
        LOGGER.info("Skipping push event without repository or ref")
        return None

    branch = ref[len(BRANCH_REF_PREFIX):] if ref.startswith(BRANCH_REF_PREFIX) else ref
    pusher = payload.get("pusher")
    commits = payload.get("commits")
    head_commit = payload.get("head_commit")
    return PushEvent(
        repo=repo,
        branch=branch,
        ref=ref,
        pusher=str(pusher.get("name", "")) if isinstance(pusher, dict) else "",
        commits=[c for c in commits if isinstance(c, dict)] if isinstance(commits, list) else [],
        head_commit=head_commit if isinstance(head_commit, dict) else None,
        compare_url=str(payload.get("compare") or ""),
    )


class WorkflowProcessor:
    """Runs every enabled workflow matching a webhook event.

    Workflows run concurrently and independently: a failure in one is
    logged and does not stop the others.
    """

    def __init__(self, db: Database, conversation: ConversationLoop, poster: DiscordChannelPoster) -> None:
        self._db = db
        self._conversation = conversation
        self._poster = poster

    async def process(self, event: WebhookEvent) -> int:
        """Process one event and return how many workflows delivered a message."""

        if event.event_name != "push":
            LOGGER.info("Ignoring %r event (delivery %s)", event.event_name, event.delivery_id)
            return 0

        push = derive_push_event(event.payload)
        if push is None:
            return 0

        workflows = self._db.find_matching_workflows(TriggerType.REPO_PUSH, push.trigger_attributes())
        if not workflows:
            LOGGER.info("No matching workflows found for %s@%s", push.repo, push.branch)
            return 0

        context = PushTemplateContext.from_push_event(push).as_mapping()
        outcomes = await asyncio.gather(*(self._run_isolated(workflow, context) for workflow in workflows))
        return sum(1 for delivered in outcomes if delivered)

    async def _run_isolated(self, workflow: Workflow, context: dict[str, str]) -> bool:
        try:
            return await self._execute(workflow, context)
        except GemcordError as exc:
            LOGGER.error("Workflow %s failed: %s", workflow.workflow_id, exc.to_dict())
            return False
        except Exception:  # noqa: BLE001
            LOGGER.exception("Workflow %s (%r) failed", workflow.workflow_id, workflow.workflow_name)
            return False

    async def _execute(self, workflow: Workflow, context: dict[str, str]) -> bool:
        if workflow.action_type is not ActionType.PROMPT_GENERATION:
            LOGGER.warning(
                "Workflow %s uses unsupported action %s; skipping",
                workflow.workflow_id,
                workflow.action_type.value,
            )
            return False
        try:
            validate_workflow_config(
                workflow.trigger_type, workflow.trigger_config, workflow.action_type, workflow.action_config
            )
        except WorkflowValidationError as exc:
            LOGGER.error("Workflow %s is invalid: %s", workflow.workflow_id, exc)
            return False

        template = workflow.action_config["promptTemplate"]
        missing = unresolved_placeholders(template, context)
        if missing:
            LOGGER.warning(
                "Workflow %s left placeholders unresolved: %s", workflow.workflow_id, ", ".join(missing)
            )
        prompt = render(template, context)

        LOGGER.info("Executing workflow: %s", workflow.workflow_name)
        result = await self._conversation.run(
            [Turn.user_text(prompt)], session_id=f"workflow:{workflow.workflow_id}"
        )
        if not result.completed:
            LOGGER.warning(
                "Workflow %s produced no answer (outcome=%s)", workflow.workflow_id, result.outcome.value
            )
            return False

        await self._poster.post(workflow.action_config["targetChannelId"], result.text)
        return True
