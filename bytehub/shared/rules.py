"""Routing rule types and the first-match-wins rule matcher.

Rules map an event classification (``event_type`` and the pull request
``merged`` flag) to the set of notification actions to take. Conditions are
flat conjunctions of equality checks; a condition left unset matches any
event.
"""

from __future__ import annotations

from typing import Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class RuleConditions(BaseModel):
    """Conditions a rule places on an event. ``None`` means no constraint."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    event_type: Optional[str] = None
    merged: Optional[bool] = None

    def to_storage(self) -> dict:
        """Serialize for storage, omitting unset conditions."""
        return self.model_dump(exclude_none=True)

    def matches(self, event_type: Optional[str], is_merged: bool) -> bool:
        if self.event_type and self.event_type != event_type:
            return False
        if self.merged is not None and self.merged != is_merged:
            return False
        return True


class RuleActions(BaseModel):
    """Notification actions triggered by a matching rule."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    post_forum: bool = False
    post_announce: bool = False

    def to_storage(self) -> dict:
        return self.model_dump()


class RuleDefinition(BaseModel):
    """A rule as seen by the matcher, detached from storage."""

    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    priority: int
    conditions: RuleConditions = RuleConditions()
    actions: RuleActions = RuleActions()


class RuleMatch(BaseModel):
    """The rule selected for an event and the actions it carries."""

    rule_id: Optional[UUID] = None
    actions: RuleActions


# Seeded on approval in this order, each with priority equal to its index.
# The matcher evaluates higher priorities first, so issues.opened is checked
# before workflow_run.completed.
DEFAULT_RULES: List[RuleDefinition] = [
    RuleDefinition(
        priority=0,
        conditions=RuleConditions(event_type="workflow_run.completed"),
        actions=RuleActions(post_forum=True, post_announce=False),
    ),
    RuleDefinition(
        priority=1,
        conditions=RuleConditions(event_type="release.published"),
        actions=RuleActions(post_forum=True, post_announce=True),
    ),
    RuleDefinition(
        priority=2,
        conditions=RuleConditions(event_type="pull_request.closed", merged=True),
        actions=RuleActions(post_forum=True, post_announce=False),
    ),
    RuleDefinition(
        priority=3,
        conditions=RuleConditions(event_type="issues.opened"),
        actions=RuleActions(post_forum=True, post_announce=False),
    ),
]


def evaluate_rules(
    rules: Iterable[RuleDefinition],
    event_type: Optional[str],
    is_merged: bool,
) -> Optional[RuleMatch]:
    """Select the actions of the highest-priority rule matching an event.

    Args:
        rules: Rules of a single project, in storage order
        event_type: Event key such as ``pull_request.closed``
        is_merged: Whether the event is a merged pull request

    Returns:
        RuleMatch for the first matching rule, or None if nothing matches
    """
    # sorted() is stable, so equal priorities keep storage order
    for rule in sorted(rules, key=lambda r: r.priority, reverse=True):
        if rule.conditions.matches(event_type, is_merged):
            return RuleMatch(rule_id=rule.id, actions=rule.actions)
    return None
