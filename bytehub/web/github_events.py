"""GitHub webhook payload models.

Only the fields needed to route and render notifications are modelled;
everything else in the payload is ignored.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Repository(_Payload):
    full_name: str
    name: str


class User(_Payload):
    login: str


class Label(_Payload):
    name: str


class Release(_Payload):
    tag_name: str
    name: Optional[str] = None
    body: Optional[str] = None
    html_url: str


class PullRequest(_Payload):
    number: int
    title: str
    html_url: str
    merged: Optional[bool] = None
    labels: List[Label] = Field(default_factory=list)


class Issue(_Payload):
    number: int
    title: str
    html_url: str
    labels: List[Label] = Field(default_factory=list)


class WorkflowRun(_Payload):
    id: int
    name: Optional[str] = None
    head_branch: Optional[str] = None
    conclusion: Optional[str] = None
    html_url: str


class _RepositoryEvent(_Payload):
    """Fields shared by every supported event."""

    action: str
    repository: Repository
    sender: User

    event_name: ClassVar[str] = ""

    @property
    def event_key(self) -> str:
        """Routing key, e.g. ``pull_request.closed``."""
        return f"{self.event_name}.{self.action}"

    @property
    def repo_full_name(self) -> str:
        return self.repository.full_name

    @property
    def actor(self) -> str:
        return self.sender.login

    @property
    def labels(self) -> List[str]:
        return []

    @property
    def is_merged(self) -> bool:
        return False


class ReleaseEvent(_RepositoryEvent):
    event_name: ClassVar[str] = "release"

    release: Release


class PullRequestEvent(_RepositoryEvent):
    event_name: ClassVar[str] = "pull_request"

    pull_request: PullRequest

    @property
    def labels(self) -> List[str]:
        return [label.name for label in self.pull_request.labels]

    @property
    def is_merged(self) -> bool:
        return bool(self.pull_request.merged)


class IssueEvent(_RepositoryEvent):
    event_name: ClassVar[str] = "issues"

    issue: Issue

    @property
    def labels(self) -> List[str]:
        return [label.name for label in self.issue.labels]


class WorkflowRunEvent(_RepositoryEvent):
    event_name: ClassVar[str] = "workflow_run"

    workflow_run: WorkflowRun


ParsedEvent = Union[ReleaseEvent, PullRequestEvent, IssueEvent, WorkflowRunEvent]

EVENT_MODELS: Dict[str, type] = {
    "release": ReleaseEvent,
    "pull_request": PullRequestEvent,
    "issues": IssueEvent,
    "workflow_run": WorkflowRunEvent,
}


def parse_event(event_name: str, payload: Dict[str, Any]) -> Optional[ParsedEvent]:
    """Parse a webhook payload for the ``X-GitHub-Event`` name.

    Returns:
        The parsed event, or None for event types that are not routed

    Raises:
        pydantic.ValidationError: If the payload is missing required fields
    """
    model = EVENT_MODELS.get(event_name)
    if model is None:
        logger.debug(f"Ignoring unsupported GitHub event: {event_name}")
        return None
    return model.model_validate(payload)
