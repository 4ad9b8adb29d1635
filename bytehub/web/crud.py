"""Database operations for the ByteHub application.

This module provides the project lifecycle, rule store and server
configuration operations. All operations are async, use SQLAlchemy 2.0
syntax, and run inside the caller's session transaction; nothing here
commits. Lifecycle mutations report expected failures (unknown or duplicate
repositories) through ``MutationResult`` instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Union
from uuid import UUID

from sqlalchemy import select, delete, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from bytehub.shared.rules import (
    DEFAULT_RULES,
    RuleActions,
    RuleConditions,
    RuleMatch,
    evaluate_rules,
)
from bytehub.web.models import (
    Project,
    Rule,
    ServerConfig,
    normalize_repo,
    repo_name,
)

logger = logging.getLogger(__name__)


class DatabaseOperationError(Exception):
    """Base exception for database operations."""
    pass


class NotFoundError(DatabaseOperationError):
    """Raised when a requested resource is not found."""
    pass


class ConflictError(DatabaseOperationError):
    """Raised when a database constraint is violated."""
    pass


class MutationError(str, Enum):
    """Expected failure kinds of lifecycle mutations."""

    ALREADY_EXISTS = "Project already exists"
    NOT_FOUND = "Project not found"


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a lifecycle mutation."""

    success: bool
    id: Optional[UUID] = None
    error: Optional[MutationError] = None

    @classmethod
    def ok(cls, id: Optional[UUID] = None) -> "MutationResult":
        return cls(success=True, id=id)

    @classmethod
    def fail(cls, error: MutationError) -> "MutationResult":
        return cls(success=False, error=error)

    def raise_for_error(self) -> "MutationResult":
        """Convert a failed result into ``NotFoundError``/``ConflictError``."""
        if self.error is MutationError.NOT_FOUND:
            raise NotFoundError(self.error.value)
        if self.error is MutationError.ALREADY_EXISTS:
            raise ConflictError(self.error.value)
        return self


ConditionsInput = Union[RuleConditions, dict]
ActionsInput = Union[RuleActions, dict]


class ProjectOperations:
    """Database operations for the project registry.

    Handles submission, approval, denial and lookup of projects. Every
    repository argument is normalized to lowercase, so callers may pass
    mixed-case input.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_by_repo(self, github_repo: str) -> Optional[Project]:
        result = await self.session.execute(
            select(Project).where(Project.github_repo == normalize_repo(github_repo))
        )
        return result.scalar_one_or_none()

    async def submit_project(self, github_repo: str) -> MutationResult:
        """Submit a repository for approval.

        Args:
            github_repo: ``owner/name`` repository, any casing

        Returns:
            MutationResult: New project ID, or ``ALREADY_EXISTS``

        Raises:
            DatabaseOperationError: If the insert fails for another reason
        """
        repo = normalize_repo(github_repo)
        try:
            if await self._get_by_repo(repo) is not None:
                return MutationResult.fail(MutationError.ALREADY_EXISTS)

            project = Project(github_repo=repo, name=repo_name(repo))

            # The unique constraint decides races between concurrent submits
            try:
                async with self.session.begin_nested():
                    self.session.add(project)
            except IntegrityError:
                logger.info(f"Concurrent submission lost for {repo}")
                return MutationResult.fail(MutationError.ALREADY_EXISTS)

            logger.info(f"Project submitted: {repo}")
            return MutationResult.ok(project.id)

        except Exception as e:
            raise DatabaseOperationError(f"Failed to submit project: {e}") from e

    async def approve_project(self, github_repo: str) -> MutationResult:
        """Mark a project approved, leaving its other fields untouched."""
        try:
            project = await self._get_by_repo(github_repo)
            if project is None:
                return MutationResult.fail(MutationError.NOT_FOUND)

            project.is_approved = True
            await self.session.flush()

            logger.info(f"Project approved: {project.github_repo}")
            return MutationResult.ok(project.id)

        except Exception as e:
            raise DatabaseOperationError(f"Failed to approve project: {e}") from e

    async def approve_project_with_forum(
        self,
        github_repo: str,
        forum_channel_id: str,
        guild_id: str
    ) -> MutationResult:
        """Approve a project, assign its forum channel and seed default rules.

        Calling this again for the same project seeds another four rules;
        existing rules are not checked.

        Args:
            github_repo: ``owner/name`` repository, any casing
            forum_channel_id: Forum channel receiving project activity
            guild_id: Discord guild snowflake ID

        Returns:
            MutationResult: Project ID, or ``NOT_FOUND``

        Raises:
            DatabaseOperationError: If the update fails
        """
        try:
            project = await self._get_by_repo(github_repo)
            if project is None:
                return MutationResult.fail(MutationError.NOT_FOUND)

            project.is_approved = True
            project.forum_channel_id = forum_channel_id
            project.guild_id = guild_id
            await self.session.flush()

            await RuleOperations(self.session).seed_default_rules(project.id)

            logger.info(
                f"Project approved with forum: {project.github_repo} "
                f"(forum={forum_channel_id}, guild={guild_id})"
            )
            return MutationResult.ok(project.id)

        except DatabaseOperationError:
            raise
        except Exception as e:
            raise DatabaseOperationError(f"Failed to approve project: {e}") from e

    async def deny_project(self, github_repo: str) -> MutationResult:
        """Delete a project and every rule it owns.

        Rules are deleted first, then the project, within the caller's
        transaction.
        """
        try:
            project = await self._get_by_repo(github_repo)
            if project is None:
                return MutationResult.fail(MutationError.NOT_FOUND)

            deleted_rules = await RuleOperations(self.session).delete_rules_by_project(project.id)

            await self.session.delete(project)
            await self.session.flush()

            logger.info(f"Project denied: {project.github_repo} ({deleted_rules} rules removed)")
            return MutationResult.ok(project.id)

        except DatabaseOperationError:
            raise
        except Exception as e:
            raise DatabaseOperationError(f"Failed to deny project: {e}") from e

    async def get_project(self, github_repo: str) -> Optional[Project]:
        """Get a project regardless of approval state."""
        try:
            return await self._get_by_repo(github_repo)
        except Exception as e:
            raise DatabaseOperationError(f"Failed to get project: {e}") from e

    async def get_approved_project(self, github_repo: str) -> Optional[Project]:
        """Get a project only if it has been approved."""
        project = await self.get_project(github_repo)
        if project is not None and project.is_approved:
            return project
        return None

    async def list_projects_by_guild(self, guild_id: str) -> List[Project]:
        """List every project associated with a guild, in submission order."""
        try:
            result = await self.session.execute(
                select(Project)
                .where(Project.guild_id == guild_id)
                .order_by(Project.created_at)
            )
            return list(result.scalars().all())
        except Exception as e:
            raise DatabaseOperationError(f"Failed to list projects: {e}") from e

    async def update_forum_id(self, github_repo: str, forum_id: str) -> MutationResult:
        return await self._update_field(github_repo, forum_channel_id=forum_id)

    async def update_thread_id(self, github_repo: str, thread_id: str) -> MutationResult:
        return await self._update_field(github_repo, thread_id=thread_id)

    async def _update_field(self, github_repo: str, **updates) -> MutationResult:
        try:
            project = await self._get_by_repo(github_repo)
            if project is None:
                return MutationResult.fail(MutationError.NOT_FOUND)

            for key, value in updates.items():
                setattr(project, key, value)
            await self.session.flush()

            return MutationResult.ok(project.id)
        except Exception as e:
            raise DatabaseOperationError(f"Failed to update project: {e}") from e


class RuleOperations:
    """Database operations for project routing rules."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_rules_by_project(self, project_id: UUID) -> List[Rule]:
        """Get a project's rules, highest priority first."""
        try:
            result = await self.session.execute(
                select(Rule)
                .where(Rule.project_id == project_id)
                .order_by(desc(Rule.priority))
            )
            return list(result.scalars().all())
        except Exception as e:
            raise DatabaseOperationError(f"Failed to get rules: {e}") from e

    async def create_rule(
        self,
        project_id: UUID,
        priority: int,
        conditions: ConditionsInput,
        actions: ActionsInput
    ) -> Rule:
        """Create a rule for a project.

        Args:
            project_id: Owning project UUID
            priority: Evaluation priority, higher first
            conditions: Event conditions; unknown keys are dropped
            actions: Actions to take on match

        Returns:
            Rule: Created rule
        """
        if isinstance(conditions, dict):
            conditions = RuleConditions.model_validate(conditions)
        if isinstance(actions, dict):
            actions = RuleActions.model_validate(actions)

        try:
            rule = Rule(
                project_id=project_id,
                priority=priority,
                conditions=conditions.to_storage(),
                actions=actions.to_storage(),
            )
            self.session.add(rule)
            await self.session.flush()
            return rule
        except IntegrityError as e:
            raise NotFoundError(f"Project not found: {project_id}") from e
        except Exception as e:
            raise DatabaseOperationError(f"Failed to create rule: {e}") from e

    async def seed_default_rules(self, project_id: UUID) -> List[Rule]:
        """Insert the four default rules with priorities 0 through 3."""
        rules = []
        for default in DEFAULT_RULES:
            rules.append(
                await self.create_rule(
                    project_id,
                    default.priority,
                    default.conditions,
                    default.actions,
                )
            )
        return rules

    async def delete_rules_by_project(self, project_id: UUID) -> int:
        """Delete every rule owned by a project.

        Returns:
            int: Number of rules deleted
        """
        try:
            result = await self.session.execute(
                delete(Rule).where(Rule.project_id == project_id)
            )
            return result.rowcount
        except Exception as e:
            raise DatabaseOperationError(f"Failed to delete rules: {e}") from e

    async def evaluate_for_project(
        self,
        project_id: UUID,
        event_type: Optional[str],
        is_merged: bool
    ) -> Optional[RuleMatch]:
        """Evaluate a project's rules against an event classification."""
        rules = await self.get_rules_by_project(project_id)
        return evaluate_rules(
            [rule.to_definition() for rule in rules],
            event_type,
            is_merged,
        )


class ServerConfigOperations:
    """Database operations for per-guild channel configuration."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_config(self, guild_id: str) -> Optional[ServerConfig]:
        """Get the configuration for a guild, or None if not set up."""
        try:
            result = await self.session.execute(
                select(ServerConfig).where(ServerConfig.guild_id == guild_id)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise DatabaseOperationError(f"Failed to get server config: {e}") from e

    async def save_config(
        self,
        guild_id: str,
        announcements_id: str,
        github_forum_id: str,
        mod_category_id: Optional[str] = None,
        project_review_id: Optional[str] = None,
        approvals_id: Optional[str] = None
    ) -> ServerConfig:
        """Create or update a guild's configuration.

        Optional channels passed as None are cleared. When every value equals
        the stored record nothing is written, so ``version`` and
        ``updated_at`` stay as they were.

        Returns:
            ServerConfig: The stored configuration
        """
        values = {
            "announcements_id": announcements_id,
            "github_forum_id": github_forum_id,
            "mod_category_id": mod_category_id,
            "project_review_id": project_review_id,
            "approvals_id": approvals_id,
        }

        try:
            config = await self.get_config(guild_id)

            if config is None:
                config = ServerConfig(guild_id=guild_id, **values)
                self.session.add(config)
                await self.session.flush()
                logger.info(f"Server config created for guild {guild_id}")
                return config

            if config.channel_values() == values:
                logger.debug(f"Server config unchanged for guild {guild_id}")
                return config

            for key, value in values.items():
                setattr(config, key, value)
            config.version += 1
            config.updated_at = datetime.now(timezone.utc)
            await self.session.flush()

            logger.info(f"Server config updated for guild {guild_id} (version {config.version})")
            return config

        except DatabaseOperationError:
            raise
        except Exception as e:
            raise DatabaseOperationError(f"Failed to save server config: {e}") from e
