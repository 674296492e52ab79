"""Unit tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from inbox_assistant.api import create_app
from inbox_assistant.repository import account_repository

from conftest import FakeLLM

INVOICE_RULE = {
    "name": "Invoices",
    "condition": {"static": {"subject": "invoice"}},
    "actions": [{"type": "LABEL", "fields": {"label": "Finance"}}],
}


@pytest.fixture
def client(db_engine, mock_settings, fake_provider) -> TestClient:
    app = create_app(
        engine=db_engine,
        settings=mock_settings,
        provider_factory=lambda account: fake_provider,
        llm_factory=lambda: FakeLLM(),
    )
    return TestClient(app)


def _base(account) -> str:
    return f"/api/user/email-account/{account.id}"


class TestHealth:
    """Test suite for the health endpoint."""

    def test_health(self, client) -> None:
        """Health reports ok."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestWatchEndpoints:
    """Test suite for watch status, watch and unwatch."""

    def test_unknown_account(self, client) -> None:
        """Unknown accounts are 404."""
        response = client.get("/api/user/email-account/missing/watch-status")

        assert response.status_code == 404

    def test_not_watching(self, client, account) -> None:
        """A fresh account is not watching."""
        response = client.get(f"{_base(account)}/watch-status")

        assert response.json() == {"isWatching": False, "subscriptionId": None, "expirationDate": None}

    def test_watch_then_unwatch(self, client, account, db_engine, fake_provider) -> None:
        """Watching persists the subscription and unwatching clears it."""
        watched = client.post(f"{_base(account)}/watch")
        status = client.get(f"{_base(account)}/watch-status").json()
        unwatched = client.post(f"{_base(account)}/unwatch")

        assert watched.status_code == 200
        assert watched.json()["subscriptionId"] == "sub-123"
        assert status["isWatching"] is True
        assert unwatched.json()["isWatching"] is False
        assert fake_provider.ops() == ["watch", "unwatch"]
        assert account_repository.get_account(db_engine, account.id).watch_subscription_id is None


class TestRuleEndpoints:
    """Test suite for rule authoring and processing."""

    def test_create_and_list(self, client, account) -> None:
        """Valid rules are created and listed."""
        created = client.post(f"{_base(account)}/rules", json=INVOICE_RULE)
        listed = client.get(f"{_base(account)}/rules")

        assert created.status_code == 201
        assert created.json()["name"] == "Invoices"
        assert [r["name"] for r in listed.json()] == ["Invoices"]

    def test_invalid_rule(self, client, account) -> None:
        """Folder actions are rejected for Gmail accounts."""
        rule = {**INVOICE_RULE, "actions": [{"type": "MOVE_FOLDER", "fields": {"folderName": "Bills"}}]}

        response = client.post(f"{_base(account)}/rules", json=rule)

        assert response.status_code == 422
        assert "folderName" in response.json()["detail"]

    def test_schema_excludes_folders_for_gmail(self, client, account) -> None:
        """The authoring schema is provider specific."""
        schema = client.get(f"{_base(account)}/rules/schema").json()

        assert "MOVE_FOLDER" not in schema["$defs"]["ActionType"]["enum"]
        assert "folderName" not in schema["$defs"]["ActionFields"]["properties"]

    def test_process_without_rules(self, client, account) -> None:
        """A message no rule matches is reported as NO_MATCH."""
        response = client.post(f"{_base(account)}/messages/msg-1/process")

        assert response.status_code == 200
        assert response.json()["state"] == "NO_MATCH"

    def test_process_matching_rule(self, client, account, fake_provider) -> None:
        """A matching rule runs its actions once."""
        client.post(f"{_base(account)}/rules", json=INVOICE_RULE)

        first = client.post(f"{_base(account)}/messages/msg-1/process").json()
        second = client.post(f"{_base(account)}/messages/msg-1/process").json()

        assert first["state"] == "DONE"
        assert first["ruleName"] == "Invoices"
        assert second["alreadyProcessed"] is True
        assert fake_provider.ops() == ["apply_label"]


class TestAssistantEndpoints:
    """Test suite for tool listing and dispatch."""

    def test_list_tools(self, client) -> None:
        """All five tools are published."""
        names = [t["name"] for t in client.get("/api/assistant/tools").json()]

        assert "getInboxStats" in names
        assert len(names) == 5

    def test_run_tool(self, client, account) -> None:
        """Tools run against the account's provider."""
        response = client.post(f"{_base(account)}/assistant/tools/getInboxStats", json={})

        assert response.status_code == 200
        assert response.json()["unreadInInbox"] == 7

    def test_unknown_tool(self, client, account) -> None:
        """Unknown tools return a failure body rather than an error status."""
        response = client.post(f"{_base(account)}/assistant/tools/nope", json={})

        assert response.status_code == 200
        assert response.json()["success"] is False


class TestScheduledEndpoints:
    """Test suite for the deferred action runner endpoint."""

    def test_run_due_with_nothing_pending(self, client) -> None:
        """No pending jobs yields an empty result."""
        response = client.post("/api/scheduled-actions/run-due")

        assert response.json() == {"count": 0, "results": []}
