"""Tests for the moderation command flows."""

import pytest

from bytehub.bot.services import governance_service as governance
from bytehub.web.crud import ProjectOperations, RuleOperations, ServerConfigOperations

from .conftest import FakeChannels

GUILD_ID = "777"


@pytest.fixture
async def server(session, channels):
    """A guild that has run /setup-server."""
    await governance.setup_server(session, channels, GUILD_ID)
    return await ServerConfigOperations(session).get_config(GUILD_ID)


class TestSubmitAndDeny:

    async def test_submit(self, session):
        message = await governance.submit_project(session, "Foo/Bar")

        assert message == "Project `Foo/Bar` submitted for approval."
        assert await ProjectOperations(session).get_project("foo/bar") is not None

    async def test_duplicate_submit(self, session):
        await governance.submit_project(session, "foo/bar")

        message = await governance.submit_project(session, "FOO/bar")

        assert message == "❌ Error: Project already exists"

    async def test_deny(self, session):
        await governance.submit_project(session, "foo/bar")

        message = await governance.deny_project(session, "foo/bar")

        assert message == "Project `foo/bar` denied and removed."
        assert await ProjectOperations(session).get_project("foo/bar") is None

    async def test_deny_unknown(self, session):
        assert await governance.deny_project(session, "x/y") == "❌ Error: Project not found"


class TestListProjects:

    async def test_empty(self, session):
        assert await governance.list_projects(session, GUILD_ID) == "No projects registered."

    async def test_groups_approved_and_pending(self, session, server, channels):
        await governance.submit_project(session, "foo/live")
        await governance.submit_project(session, "foo/waiting")
        await governance.approve_project(session, channels, GUILD_ID, "foo/live")

        message = await governance.list_projects(session, GUILD_ID)

        assert message == (
            "**✅ Approved:**\n• `foo/live`\n\n**⏳ Pending:**\n• `foo/waiting`"
        )

    async def test_other_guilds_are_hidden(self, session):
        ops = ProjectOperations(session)
        await ops.submit_project("foo/elsewhere")
        await ops.approve_project_with_forum("foo/elsewhere", "1", "other-guild")

        assert await governance.list_projects(session, GUILD_ID) == "No projects registered."


class TestApproveProject:

    async def test_requires_server_setup(self, session, channels):
        await governance.submit_project(session, "foo/bar")

        message = await governance.approve_project(session, channels, GUILD_ID, "foo/bar")

        assert message == "❌ Error: Server not set up. Run /setup-server first."
        assert not (await ProjectOperations(session).get_project("foo/bar")).is_approved

    async def test_unknown_project(self, session, server, channels):
        message = await governance.approve_project(session, channels, GUILD_ID, "x/y")

        assert message == "❌ Error: Project not found"

    async def test_creates_forum_and_seeds_rules(self, session, server, channels):
        await governance.submit_project(session, "foo/bar")

        message = await governance.approve_project(session, channels, GUILD_ID, "Foo/Bar")

        forum_id = channels.channels["bar"]
        assert message == f"✅ Project `Foo/Bar` approved!\n\nCreated forum: <#{forum_id}>"

        project = await ProjectOperations(session).get_project("foo/bar")
        assert project.is_approved
        assert project.forum_channel_id == forum_id
        assert project.guild_id == GUILD_ID
        assert len(await RuleOperations(session).get_rules_by_project(project.id)) == 4

    async def test_reuses_existing_forum(self, session, server, channels):
        await governance.submit_project(session, "foo/bar")
        await ProjectOperations(session).update_forum_id("foo/bar", "424242")
        created_before = list(channels.created)

        message = await governance.approve_project(session, channels, GUILD_ID, "foo/bar")

        assert message.endswith("Reusing existing forum: <#424242>")
        assert channels.created == created_before

    async def test_reapproval_reuses_forum_and_duplicates_rules(self, session, server, channels):
        await governance.submit_project(session, "foo/bar")
        await governance.approve_project(session, channels, GUILD_ID, "foo/bar")

        message = await governance.approve_project(session, channels, GUILD_ID, "foo/bar")

        assert "Reusing existing forum" in message
        project = await ProjectOperations(session).get_project("foo/bar")
        assert len(await RuleOperations(session).get_rules_by_project(project.id)) == 8


class TestSetupServer:

    async def test_creates_channels_and_config(self, session, channels):
        message = await governance.setup_server(session, channels, GUILD_ID)

        assert message.startswith("✅ **Server setup complete!**")
        assert channels.created == ["announcements", "GitHub", "Mod", "project-review", "approvals"]

        config = await ServerConfigOperations(session).get_config(GUILD_ID)
        assert config.announcements_id == channels.channels["announcements"]
        assert config.github_forum_id == channels.channels["GitHub"]
        assert config.mod_category_id == channels.channels["Mod"]
        assert config.project_review_id == channels.channels["project-review"]
        assert config.approvals_id == channels.channels["approvals"]

    async def test_existing_channels_are_found(self, session):
        channels = FakeChannels({"Announcements": "1", "github": "2"})

        await governance.setup_server(session, channels, GUILD_ID)

        config = await ServerConfigOperations(session).get_config(GUILD_ID)
        assert config.announcements_id == "1"
        assert config.github_forum_id == "2"
        assert "announcements" not in channels.created

    async def test_rerun_is_idempotent(self, session, channels):
        await governance.setup_server(session, channels, GUILD_ID)
        await governance.setup_server(session, channels, GUILD_ID)

        config = await ServerConfigOperations(session).get_config(GUILD_ID)
        assert config.version == 1
        assert len(channels.created) == 5
