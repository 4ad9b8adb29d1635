"""Routing of GitHub events to Discord notifications.

The dispatcher resolves the approved project for an event, applies the
project's rules, and hands the resulting posts to a ``NotificationSink``.
Events that are not actionable (unknown project, filtered, no matching rule)
are skipped and logged, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from bytehub.shared.rules import RuleActions
from bytehub.web.crud import ProjectOperations, RuleOperations, ServerConfigOperations
from bytehub.web.github_events import (
    IssueEvent,
    ParsedEvent,
    PullRequestEvent,
    ReleaseEvent,
    WorkflowRunEvent,
)
from bytehub.web.models import Project

logger = logging.getLogger(__name__)

# Embed colours
COLOR_SUCCESS = 0x2ECC71
COLOR_FAILURE = 0xE74C3C
COLOR_PR = 0x9B59B6
COLOR_BOUNTY = 0xF1C40F
COLOR_ISSUE = 0x3498DB

BOUNTY_LABEL = "bounty"

BOT_ACTORS = (
    "dependabot",
    "renovate",
    "github-actions",
)

CI_BRANCHES = ("main", "master")


@dataclass(frozen=True)
class NotificationEmbed:
    """Chat-platform independent embed content."""

    title: str
    description: str
    color: int
    footer: Optional[str] = None


class NotificationSink(Protocol):
    """Chat client used to deliver notifications."""

    async def create_forum_thread(self, forum_channel_id: str, name: str, content: str) -> str:
        """Create a thread in a forum channel and return its ID."""
        ...

    async def send_embed(self, channel_id: str, embed: NotificationEmbed) -> None:
        """Post an embed to a channel or thread."""
        ...


@dataclass
class DispatchOutcome:
    """What happened to a single event."""

    repo: Optional[str] = None
    actions: Optional[RuleActions] = None
    posted_forum: bool = False
    posted_announce: bool = False
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


def is_bot_actor(login: str) -> bool:
    login = login.lower()
    return any(bot in login for bot in BOT_ACTORS)


def should_post(event: ParsedEvent) -> bool:
    """Filter out noise before rules are consulted."""
    if isinstance(event, PullRequestEvent):
        return not is_bot_actor(event.actor)

    if isinstance(event, WorkflowRunEvent):
        conclusion = event.workflow_run.conclusion or "unknown"
        if conclusion in ("skipped", "cancelled"):
            return False
        return (event.workflow_run.head_branch or "") in CI_BRANCHES

    return True


def build_embed(event: ParsedEvent) -> NotificationEmbed:
    """Render an event as an embed."""
    has_bounty = BOUNTY_LABEL in event.labels

    if isinstance(event, WorkflowRunEvent):
        run = event.workflow_run
        conclusion = run.conclusion or "unknown"
        succeeded = conclusion == "success"
        return NotificationEmbed(
            title=f"{'✅' if succeeded else '❌'} {run.name or 'CI'} {conclusion}",
            description=f"Branch: `{run.head_branch or 'unknown'}`\n[View Run]({run.html_url})",
            color=COLOR_SUCCESS if succeeded else COLOR_FAILURE,
        )

    if isinstance(event, PullRequestEvent):
        pr = event.pull_request
        verb = "merged" if event.is_merged else event.action
        return NotificationEmbed(
            title=f"{'🪙' if has_bounty else '🧩'} PR #{pr.number} {verb}",
            description=f"**{pr.title}**\nby @{event.actor}\n[View PR]({pr.html_url})",
            color=COLOR_BOUNTY if has_bounty else COLOR_PR,
        )

    if isinstance(event, IssueEvent):
        issue = event.issue
        return NotificationEmbed(
            title=f"{'🪙' if has_bounty else '📋'} Issue #{issue.number} {event.action}",
            description=f"**{issue.title}**\nby @{event.actor}\n[View Issue]({issue.html_url})",
            color=COLOR_BOUNTY if has_bounty else COLOR_ISSUE,
        )

    if isinstance(event, ReleaseEvent):
        release = event.release
        return NotificationEmbed(
            title=f"🚀 Release {release.tag_name}",
            description=f"{release.body or ''}\n\n[View Release]({release.html_url})",
            color=COLOR_SUCCESS,
            footer=f"by @{event.actor}",
        )

    raise TypeError(f"Unsupported event: {type(event).__name__}")


def thread_name_for(project: Project) -> str:
    return f"📦 {project.name} Activity"


class EventDispatcher:
    """Routes parsed GitHub events to a project's Discord destinations."""

    def __init__(self, session: AsyncSession, notifier: Optional[NotificationSink] = None):
        self.session = session
        self.notifier = notifier
        self.projects = ProjectOperations(session)
        self.rules = RuleOperations(session)
        self.server_configs = ServerConfigOperations(session)

    async def dispatch(self, event: ParsedEvent) -> DispatchOutcome:
        """Evaluate an event and post the notifications its rule asks for.

        Args:
            event: Parsed webhook event

        Returns:
            DispatchOutcome: Matched actions and what was posted
        """
        repo = event.repo_full_name
        outcome = DispatchOutcome(repo=repo)

        project = await self.projects.get_approved_project(repo)
        if project is None:
            logger.info(f"Event from unlisted/unapproved project {repo}, ignoring")
            outcome.skipped_reason = "project_not_approved"
            return outcome

        if not should_post(event):
            logger.info(f"Event {event.event_key} for {repo} filtered out")
            outcome.skipped_reason = "filtered"
            return outcome

        match = await self.rules.evaluate_for_project(project.id, event.event_key, event.is_merged)
        if match is None:
            logger.info(f"No rule matched {event.event_key} for {repo}")
            outcome.skipped_reason = "no_match"
            return outcome

        outcome.actions = match.actions

        if self.notifier is None:
            logger.debug(f"No notifier configured, not posting {event.event_key} for {repo}")
            return outcome

        embed = build_embed(event)

        if match.actions.post_forum:
            thread_id = await self._get_or_create_thread(project)
            if thread_id:
                await self.notifier.send_embed(thread_id, embed)
                outcome.posted_forum = True
                logger.info(f"Posted {event.event_key} to project thread for {repo}")

        if match.actions.post_announce:
            outcome.posted_announce = await self._post_announcement(project, embed)

        return outcome

    async def _get_or_create_thread(self, project: Project) -> Optional[str]:
        if project.thread_id:
            return project.thread_id

        if not project.forum_channel_id:
            logger.warning(f"Project {project.github_repo} has no forum channel, skipping forum post")
            return None

        thread_id = await self.notifier.create_forum_thread(
            project.forum_channel_id,
            thread_name_for(project),
            "Project activity thread. All events will be posted here.",
        )
        await self.projects.update_thread_id(project.github_repo, thread_id)
        # The thread exists in Discord now; keep its ID even if a later post fails
        await self.session.commit()
        logger.info(f"Created activity thread {thread_id} for {project.github_repo}")
        return thread_id

    async def _post_announcement(self, project: Project, embed: NotificationEmbed) -> bool:
        config = await self.server_configs.get_config(project.guild_id)
        if config is None or not config.announcements_id:
            logger.info(f"Guild {project.guild_id} has no announcements channel configured")
            return False

        await self.notifier.send_embed(config.announcements_id, embed)
        logger.info(f"Announced event for {project.github_repo} in guild {project.guild_id}")
        return True
