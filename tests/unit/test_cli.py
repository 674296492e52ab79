"""Unit tests for the command-line interface."""

import json

import pytest

from inbox_assistant.cli import main
from inbox_assistant.config import get_settings
from inbox_assistant.db import get_engine


@pytest.fixture(autouse=True)
def cli_database(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("INBOX_ASSISTANT_DATABASE_URL", f"sqlite:///{tmp_path / 'cli.sqlite3'}")
    monkeypatch.setenv("INBOX_ASSISTANT_LOG_LEVEL", "CRITICAL")
    get_settings.cache_clear()
    get_engine.cache_clear()
    yield
    get_engine().dispose()
    get_settings.cache_clear()
    get_engine.cache_clear()


def _add_account(capsys) -> str:
    assert main(["accounts", "add", "--email", "user@example.com", "--provider", "google"]) == 0
    line = next(row for row in capsys.readouterr().out.splitlines() if "\t" in row)
    return line.split("\t")[0]


class TestCli:
    """Test suite for the CLI entry point."""

    def test_db_init(self, capsys) -> None:
        """db init creates the schema."""
        assert main(["db", "init"]) == 0
        assert "Schema ready" in capsys.readouterr().out

    def test_accounts(self, capsys) -> None:
        """Accounts can be added and listed."""
        account_id = _add_account(capsys)

        assert main(["accounts", "list"]) == 0
        assert f"{account_id}\tuser@example.com\tgoogle\t-" in capsys.readouterr().out

    def test_rules_add_and_list(self, tmp_path, capsys) -> None:
        """Rule documents are validated and stored."""
        account_id = _add_account(capsys)
        document = tmp_path / "rule.json"
        document.write_text(
            json.dumps(
                {
                    "name": "Invoices",
                    "condition": {"aiInstructions": "Invoices from vendors"},
                    "actions": [{"type": "LABEL", "fields": {"label": "Finance"}}],
                }
            )
        )

        assert main(["rules", "add", "--account", account_id, str(document)]) == 0
        assert main(["rules", "list", "--account", account_id]) == 0
        assert "Invoices\t1 actions" in capsys.readouterr().out

    def test_invalid_rule(self, tmp_path, capsys) -> None:
        """Invalid documents fail with exit code 1."""
        account_id = _add_account(capsys)
        document = tmp_path / "rule.json"
        document.write_text(json.dumps({"name": "Bad", "condition": {}, "actions": [{"type": "EXPLODE"}]}))

        assert main(["rules", "add", "--account", account_id, str(document)]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_unknown_account(self, capsys) -> None:
        """Unknown accounts are reported as errors."""
        assert main(["watch", "status", "--account", "missing"]) == 1
        assert "Unknown email account" in capsys.readouterr().err

    def test_watch_status(self, capsys) -> None:
        """Status prints the camelCase projection."""
        account_id = _add_account(capsys)

        assert main(["watch", "status", "--account", account_id]) == 0
        assert json.loads(capsys.readouterr().out)["isWatching"] is False
