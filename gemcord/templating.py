"""Flat `{{key}}` substitution for workflow prompt templates."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, fields
from typing import Mapping

from gemcord.models import PushEvent

_PLACEHOLDER = re.compile(r"\{\{([A-Za-z0-9_.-]+)\}\}")


def render(template: str, context: Mapping[str, str]) -> str:
    """Replace each `{{key}}` with `context[key]` in a single pass.

    Keys missing from the context stay in the output as written. Substituted
    values are never expanded again.
    """

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in context:
            return str(context[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_substitute, template)


def unresolved_placeholders(template: str, context: Mapping[str, str]) -> list[str]:
    """Return placeholder keys in `template` that `context` cannot fill, in order."""

    seen: list[str] = []
    for key in _PLACEHOLDER.findall(template):
        if key not in context and key not in seen:
            seen.append(key)
    return seen


@dataclass(frozen=True, slots=True)
class PushTemplateContext:
    """Values a push-triggered prompt template may reference."""

    repo: str
    branch: str
    pusher: str
    commit_count: str
    head_commit_message: str
    head_commit_url: str
    compare_url: str
    commits: str

    @classmethod
    def from_push_event(cls, event: PushEvent) -> PushTemplateContext:
        head = event.head_commit or {}
        commit_lines = [
            f"- {str(c.get('id', ''))[:7]} {_first_line(c.get('message', ''))}"
            for c in event.commits
        ]
        return cls(
            repo=event.repo,
            branch=event.branch,
            pusher=event.pusher,
            commit_count=str(len(event.commits)),
            head_commit_message=str(head.get("message", "")),
            head_commit_url=str(head.get("url", "")),
            compare_url=event.compare_url,
            commits="\n".join(commit_lines),
        )

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    def as_mapping(self) -> dict[str, str]:
        return asdict(self)


def _first_line(message: object) -> str:
    text = str(message or "")
    return text.splitlines()[0] if text else ""
