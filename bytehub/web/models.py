"""Database models for the ByteHub application."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean
from sqlalchemy import DateTime
from sqlalchemy import ForeignKey
from sqlalchemy import Index, UniqueConstraint
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import String
from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped, mapped_column, validates

from bytehub.shared.database import Base
from bytehub.shared.rules import RuleActions, RuleConditions, RuleDefinition


def normalize_repo(github_repo: str) -> str:
    """Normalize an ``owner/name`` repository key for storage and lookup."""
    return github_repo.lower()


def repo_name(github_repo: str) -> str:
    """Project name derived from the last path segment of the repository."""
    return github_repo.rsplit("/", 1)[-1] or github_repo


class Project(Base):
    """A GitHub repository registered for Discord notifications.

    Projects are submitted unapproved, approved by a moderator (optionally
    with a dedicated forum channel) and removed on denial. ``github_repo`` is
    stored lowercase and is unique across all guilds.
    """

    __tablename__ = "projects"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        doc="Unique project identifier"
    )

    # Repository identity
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Repository name (last segment of github_repo)"
    )
    github_repo: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Lowercase owner/name repository key"
    )

    # Discord destination
    forum_channel_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="",
        doc="Forum channel receiving this project's activity"
    )
    thread_id: Mapped[Optional[str]] = mapped_column(
        String,
        nullable=True,
        doc="Activity thread inside the forum channel"
    )
    guild_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="",
        doc="Discord guild (server) snowflake ID"
    )

    # Approval state
    is_approved: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Whether a moderator approved the project"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Timestamp when the project was submitted"
    )

    __table_args__ = (
        UniqueConstraint("github_repo", name="uq_projects_github_repo"),
        Index("ix_projects_guild_id", "guild_id"),
    )

    def __init__(self, **kwargs):
        """Initialize Project with default values."""
        kwargs.setdefault('forum_channel_id', '')
        kwargs.setdefault('guild_id', '')
        kwargs.setdefault('is_approved', False)
        kwargs.setdefault('created_at', datetime.now(timezone.utc))
        super().__init__(**kwargs)

    @validates("github_repo")
    def _normalize_github_repo(self, key: str, value: str) -> str:
        return normalize_repo(value)

    def __repr__(self) -> str:
        status = "approved" if self.is_approved else "pending"
        return f"<Project(github_repo='{self.github_repo}', status='{status}')>"


class Rule(Base):
    """Routing rule owned by a single project.

    ``conditions`` and ``actions`` are stored as JSON objects with unset
    conditions omitted. Rules are created and deleted but never updated.
    """

    __tablename__ = "rules"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        doc="Unique rule identifier"
    )
    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id"),
        nullable=False,
        doc="Project owning this rule"
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Evaluation priority, higher first"
    )
    conditions: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        doc="Event conditions (event_type, merged)"
    )
    actions: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        doc="Actions to take (post_forum, post_announce)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Timestamp when the rule was created"
    )

    __table_args__ = (
        Index("ix_rules_project_id", "project_id"),
        Index("ix_rules_project_priority", "project_id", "priority"),
    )

    def __init__(self, **kwargs):
        kwargs.setdefault('created_at', datetime.now(timezone.utc))
        super().__init__(**kwargs)

    @property
    def rule_conditions(self) -> RuleConditions:
        return RuleConditions.model_validate(self.conditions or {})

    @property
    def rule_actions(self) -> RuleActions:
        return RuleActions.model_validate(self.actions or {})

    def to_definition(self) -> RuleDefinition:
        """Detach the rule for evaluation."""
        return RuleDefinition(
            id=self.id,
            priority=self.priority,
            conditions=self.rule_conditions,
            actions=self.rule_actions,
        )

    def __repr__(self) -> str:
        return f"<Rule(project_id='{self.project_id}', priority={self.priority}, conditions={self.conditions})>"


class ServerConfig(Base):
    """Per-guild channel configuration.

    Maps the logical destinations (announcements, GitHub forum category,
    moderation review and approvals) to Discord channel IDs. ``version`` is
    bumped on every write so callers can tell whether a save changed anything.
    """

    __tablename__ = "server_configs"

    # Primary key
    guild_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="Discord guild (server) snowflake ID"
    )

    # Required destinations
    announcements_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        doc="Announcements channel ID"
    )
    github_forum_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        doc="GitHub category holding project forum channels"
    )

    # Moderation destinations
    mod_category_id: Mapped[Optional[str]] = mapped_column(
        String,
        nullable=True,
        doc="Moderation category ID"
    )
    project_review_id: Mapped[Optional[str]] = mapped_column(
        String,
        nullable=True,
        doc="Channel where submitted projects are reviewed"
    )
    approvals_id: Mapped[Optional[str]] = mapped_column(
        String,
        nullable=True,
        doc="Channel where approvals are logged"
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Incremented on every write"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Timestamp when the configuration was created"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Timestamp of the last write"
    )

    CHANNEL_FIELDS = (
        "announcements_id",
        "github_forum_id",
        "mod_category_id",
        "project_review_id",
        "approvals_id",
    )

    def __init__(self, **kwargs):
        """Initialize ServerConfig with default timestamps."""
        now = datetime.now(timezone.utc)
        kwargs.setdefault('created_at', now)
        kwargs.setdefault('updated_at', now)
        kwargs.setdefault('version', 1)
        super().__init__(**kwargs)

    def channel_values(self) -> dict:
        return {field: getattr(self, field) for field in self.CHANNEL_FIELDS}

    def __repr__(self) -> str:
        return f"<ServerConfig(guild_id='{self.guild_id}', version={self.version})>"
