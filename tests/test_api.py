"""Tests for the HTTP API and the GitHub webhook receiver."""

import json

import pytest

from bytehub.web.security import compute_github_signature

from .conftest import WEBHOOK_SECRET
from .github_payloads import (
    issue_payload,
    pull_request_payload,
    release_payload,
    workflow_run_payload,
)


async def submit(client, auth_headers, repo="foo/bar"):
    return await client.post("/projects", json={"github_repo": repo}, headers=auth_headers)


async def approve(client, auth_headers, repo="foo/bar", forum="555", guild="777"):
    return await client.post(
        f"/projects/{repo}/approve",
        json={"forum_channel_id": forum, "guild_id": guild},
        headers=auth_headers,
    )


async def deliver(client, event, payload, secret=WEBHOOK_SECRET, signature=None):
    body = json.dumps(payload).encode()
    headers = {
        "X-GitHub-Event": event,
        "X-Hub-Signature-256": signature or compute_github_signature(secret, body),
        "Content-Type": "application/json",
    }
    return await client.post("/webhooks/github", content=body, headers=headers)


class TestHealth:

    async def test_health_does_not_require_auth(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "x-request-id" in response.headers

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"x-request-id": "abc-123"})

        assert response.headers["x-request-id"] == "abc-123"


class TestAuthentication:

    async def test_missing_key(self, client):
        response = await client.get("/projects/foo/bar")

        assert response.status_code == 401

    async def test_wrong_key(self, client):
        response = await client.get(
            "/projects/foo/bar", headers={"Authorization": "Bearer nope"}
        )

        assert response.status_code == 401


class TestProjectEndpoints:

    async def test_submit_and_get(self, client, auth_headers):
        response = await submit(client, auth_headers, "Foo/Bar")

        assert response.status_code == 201
        assert response.json()["success"] is True

        response = await client.get("/projects/FOO/bar", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["github_repo"] == "foo/bar"
        assert body["name"] == "bar"
        assert body["is_approved"] is False

    async def test_duplicate_submit_conflicts(self, client, auth_headers):
        await submit(client, auth_headers)

        response = await submit(client, auth_headers, "FOO/BAR")

        assert response.status_code == 409
        assert response.json()["detail"] == "Project already exists"
        assert response.json()["type"] == "conflict_error"

    async def test_invalid_repo_name(self, client, auth_headers):
        response = await client.post(
            "/projects", json={"github_repo": "no-owner"}, headers=auth_headers
        )

        assert response.status_code == 422
        assert response.json()["type"] == "validation_error"

    async def test_unknown_project(self, client, auth_headers):
        response = await client.get("/projects/x/y", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Project not found"

    async def test_approved_lookup(self, client, auth_headers):
        await submit(client, auth_headers)

        pending = await client.get("/projects/foo/bar/approved", headers=auth_headers)
        await client.post("/projects/foo/bar/approve", headers=auth_headers)
        approved = await client.get("/projects/foo/bar/approved", headers=auth_headers)

        assert pending.status_code == 404
        assert approved.status_code == 200
        assert approved.json()["forum_channel_id"] == ""

    async def test_approve_with_forum_seeds_rules(self, client, auth_headers):
        await submit(client, auth_headers)

        response = await approve(client, auth_headers)

        assert response.status_code == 200
        rules = (await client.get("/projects/foo/bar/rules", headers=auth_headers)).json()
        assert rules["total"] == 4
        assert [r["priority"] for r in rules["rules"]] == [3, 2, 1, 0]
        assert rules["rules"][0]["conditions"]["event_type"] == "issues.opened"

    async def test_approve_unknown(self, client, auth_headers):
        response = await approve(client, auth_headers, "x/y")

        assert response.status_code == 404

    async def test_deny(self, client, auth_headers):
        await submit(client, auth_headers)
        await approve(client, auth_headers)

        response = await client.delete("/projects/foo/bar", headers=auth_headers)

        assert response.status_code == 200
        assert (await client.get("/projects/foo/bar", headers=auth_headers)).status_code == 404
        assert (await client.delete("/projects/foo/bar", headers=auth_headers)).status_code == 404

    async def test_update_forum_and_thread(self, client, auth_headers):
        await submit(client, auth_headers)

        forum = await client.patch(
            "/projects/foo/bar/forum", json={"forum_id": "1"}, headers=auth_headers
        )
        thread = await client.patch(
            "/projects/foo/bar/thread", json={"thread_id": "2"}, headers=auth_headers
        )

        assert forum.status_code == 200
        assert thread.status_code == 200
        body = (await client.get("/projects/foo/bar", headers=auth_headers)).json()
        assert body["forum_channel_id"] == "1"
        assert body["thread_id"] == "2"

    async def test_list_guild_projects(self, client, auth_headers):
        await submit(client, auth_headers, "foo/one")
        await submit(client, auth_headers, "foo/two")
        await approve(client, auth_headers, "foo/one", guild="777")

        response = await client.get("/guilds/777/projects", headers=auth_headers)

        assert response.json()["total"] == 1
        assert response.json()["projects"][0]["github_repo"] == "foo/one"


class TestRuleEndpoints:

    async def test_create_and_evaluate(self, client, auth_headers):
        await submit(client, auth_headers)
        await approve(client, auth_headers)

        created = await client.post(
            "/projects/foo/bar/rules",
            json={
                "priority": 10,
                "conditions": {"event_type": "pull_request.closed", "merged": False},
                "actions": {"post_forum": True},
            },
            headers=auth_headers,
        )
        assert created.status_code == 201

        response = await client.post(
            "/projects/foo/bar/rules/evaluate",
            json={"event_type": "pull_request.closed", "is_merged": False},
            headers=auth_headers,
        )

        body = response.json()
        assert body["matched"] is True
        assert body["rule_id"] == created.json()["id"]
        assert body["actions"] == {"post_forum": True, "post_announce": False}

    async def test_evaluate_without_match(self, client, auth_headers):
        await submit(client, auth_headers)
        await approve(client, auth_headers)

        response = await client.post(
            "/projects/foo/bar/rules/evaluate",
            json={"event_type": "issues.closed"},
            headers=auth_headers,
        )

        assert response.json() == {"matched": False, "rule_id": None, "actions": None}

    async def test_rules_for_unknown_project(self, client, auth_headers):
        response = await client.get("/projects/x/y/rules", headers=auth_headers)

        assert response.status_code == 404


class TestServerConfigEndpoints:

    async def test_missing_config(self, client, auth_headers):
        response = await client.get("/guilds/777/config", headers=auth_headers)

        assert response.status_code == 404

    async def test_save_is_idempotent(self, client, auth_headers):
        payload = {"announcements_id": "1", "github_forum_id": "2"}

        first = await client.put("/guilds/777/config", json=payload, headers=auth_headers)
        second = await client.put("/guilds/777/config", json=payload, headers=auth_headers)
        changed = await client.put(
            "/guilds/777/config",
            json={**payload, "announcements_id": "3"},
            headers=auth_headers,
        )

        assert first.json()["version"] == 1
        assert second.json()["version"] == 1
        assert changed.json()["version"] == 2

        stored = await client.get("/guilds/777/config", headers=auth_headers)
        assert stored.json()["announcements_id"] == "3"
        assert stored.json()["guild_id"] == "777"


class TestGithubWebhook:

    @pytest.fixture
    async def routed(self, client, auth_headers):
        await submit(client, auth_headers)
        await approve(client, auth_headers)
        await client.put(
            "/guilds/777/config",
            json={"announcements_id": "888", "github_forum_id": "2"},
            headers=auth_headers,
        )

    async def test_invalid_signature(self, client, notifier):
        response = await deliver(client, "release", release_payload(), secret="wrong")

        assert response.status_code == 401
        assert notifier.embeds == []

    async def test_missing_signature(self, client):
        response = await client.post(
            "/webhooks/github",
            content=b"{}",
            headers={"X-GitHub-Event": "release"},
        )

        assert response.status_code == 401

    async def test_missing_event_header(self, client):
        body = b"{}"
        response = await client.post(
            "/webhooks/github",
            content=body,
            headers={"X-Hub-Signature-256": compute_github_signature(WEBHOOK_SECRET, body)},
        )

        assert response.status_code == 400

    async def test_malformed_payload(self, client):
        response = await deliver(client, "issues", {"action": "opened"})

        assert response.status_code == 400

    async def test_unsupported_event_is_ignored(self, client):
        response = await deliver(client, "ping", {"zen": "Design for failure."})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    async def test_unlisted_repository_is_skipped(self, client, notifier):
        response = await deliver(client, "release", release_payload("some/other"))

        assert response.json()["status"] == "skipped"
        assert response.json()["skipped_reason"] == "project_not_approved"
        assert notifier.embeds == []

    async def test_release_posts_to_thread_and_announcements(self, client, routed, notifier):
        response = await deliver(client, "release", release_payload())

        body = response.json()
        assert body["status"] == "processed"
        assert body["event"] == "release.published"
        assert body["posted_forum"] and body["posted_announce"]
        assert notifier.channels_posted() == ["9001", "888"]

    async def test_thread_id_is_persisted(self, client, routed, notifier, auth_headers):
        await deliver(client, "issues", issue_payload())
        await deliver(client, "workflow_run", workflow_run_payload())

        assert len(notifier.threads) == 1
        assert notifier.channels_posted() == ["9001", "9001"]
        project = (await client.get("/projects/foo/bar", headers=auth_headers)).json()
        assert project["thread_id"] == "9001"

    async def test_unmerged_pull_request_is_not_posted(self, client, routed, notifier):
        response = await deliver(client, "pull_request", pull_request_payload(merged=False))

        assert response.json()["skipped_reason"] == "no_match"
        assert notifier.embeds == []

    async def test_bot_activity_is_filtered(self, client, routed, notifier):
        response = await deliver(
            client, "pull_request", pull_request_payload(sender="dependabot[bot]")
        )

        assert response.json()["skipped_reason"] == "filtered"
