"""Unit tests for account, rule, execution, scheduling and digest persistence."""

from datetime import datetime, timedelta, timezone

import pytest

from inbox_assistant.exceptions import RepositoryError
from inbox_assistant.models import Action, ActionFields, ActionType, Condition, RuleDefinition
from inbox_assistant.repository import (
    account_repository,
    digest_repository,
    executed_rule_repository,
    rule_repository,
    scheduled_action_repository,
)
from inbox_assistant.repository.schema import ensure_schema


def _definition(name: str = "Invoices") -> RuleDefinition:
    return RuleDefinition(
        name=name,
        condition=Condition(ai_instructions="Invoices"),
        actions=[Action(type=ActionType.LABEL, fields=ActionFields(label="Invoices"))],
    )


class TestSchema:
    """Test suite for schema bootstrap."""

    def test_ensure_schema_is_idempotent(self, db_engine) -> None:
        """Running the DDL twice is harmless."""
        ensure_schema(db_engine)
        ensure_schema(db_engine)


class TestAccountRepository:
    """Test suite for accounts and watch state."""

    def test_upsert_by_email(self, db_engine) -> None:
        """Upserting the same address updates instead of duplicating."""
        first = account_repository.upsert_account(db_engine, email="a@example.com", provider="google", access_token="1")
        second = account_repository.upsert_account(db_engine, email="A@example.com", provider="google", access_token="2")

        assert second.id == first.id
        assert second.access_token == "2"
        assert len(account_repository.list_accounts(db_engine)) == 1

    def test_watch_status_projection(self, db_engine, account) -> None:
        """Watch status reflects the persisted subscription."""
        assert account_repository.get_watch_status(db_engine, account.id).is_watching is False

        expires = datetime(2026, 10, 26, 9, 0, tzinfo=timezone.utc)
        account_repository.set_watch_subscription(
            db_engine, account.id, subscription_id="sub-1", expiration_date=expires
        )
        status = account_repository.get_watch_status(db_engine, account.id)

        assert status.is_watching is True
        assert status.subscription_id == "sub-1"
        assert status.expiration_date == expires
        assert status.model_dump(mode="json", by_alias=True) == {
            "isWatching": True,
            "subscriptionId": "sub-1",
            "expirationDate": "2026-10-26T09:00:00Z",
        }

        account_repository.clear_watch_subscription(db_engine, account.id)
        assert account_repository.get_watch_status(db_engine, account.id).is_watching is False

    def test_watch_status_unknown_account(self, db_engine) -> None:
        """Unknown accounts have no status."""
        assert account_repository.get_watch_status(db_engine, "missing") is None


class TestRuleRepository:
    """Test suite for rule persistence."""

    def test_round_trip_and_order(self, db_engine, account) -> None:
        """Rules come back in creation order with their conditions and actions."""
        first = rule_repository.create_rule(db_engine, account.id, _definition("first"))
        second = rule_repository.create_rule(db_engine, account.id, _definition("second"))

        rules = rule_repository.list_rules(db_engine, account.id)

        assert [r.name for r in rules] == ["first", "second"]
        assert (first.position, second.position) == (0, 1)
        assert rules[0].condition.ai_instructions == "Invoices"
        assert rules[0].actions[0].fields.label == "Invoices"

    def test_enabled_only(self, db_engine, account) -> None:
        """Disabled rules are skipped when asked."""
        rule = rule_repository.create_rule(db_engine, account.id, _definition())
        rule_repository.set_rule_enabled(db_engine, rule_id=rule.id, enabled=False)

        assert rule_repository.list_rules(db_engine, account.id, enabled_only=True) == []
        assert len(rule_repository.list_rules(db_engine, account.id)) == 1

    def test_delete(self, db_engine, account) -> None:
        """Deleting reports whether a row was removed."""
        rule = rule_repository.create_rule(db_engine, account.id, _definition())

        assert rule_repository.delete_rule(db_engine, rule.id) is True
        assert rule_repository.delete_rule(db_engine, rule.id) is False

    def test_missing_row_after_insert(self, db_engine, account, monkeypatch) -> None:
        """A rule that cannot be read back raises RepositoryError."""
        monkeypatch.setattr(rule_repository, "get_rule", lambda engine, rule_id: None)

        with pytest.raises(RepositoryError, match="not found after insert"):
            rule_repository.create_rule(db_engine, account.id, _definition())


class TestExecutedRuleRepository:
    """Test suite for execution claims."""

    def test_claim_is_exclusive(self, db_engine, account) -> None:
        """A key can be claimed once."""
        key = dict(account_id=account.id, message_id="m1", thread_id="t1", rule_id="r1")

        first = executed_rule_repository.claim_execution(db_engine, **key)
        second = executed_rule_repository.claim_execution(db_engine, **key)

        assert first is not None
        assert second is None
        assert executed_rule_repository.has_processed(db_engine, account_id=account.id, message_id="m1")

    def test_complete_records_outcomes(self, db_engine, account) -> None:
        """Completion stores the status and outcomes."""
        execution_id = executed_rule_repository.claim_execution(
            db_engine, account_id=account.id, message_id="m1", thread_id="t1", rule_id="r1"
        )
        executed_rule_repository.complete_execution(
            db_engine,
            execution_id,
            status=executed_rule_repository.STATUS_APPLIED,
            outcomes=[{"index": 0, "status": "SUCCEEDED"}],
        )

        record = executed_rule_repository.get_execution(db_engine, account_id=account.id, message_id="m1")

        assert record["status"] == "APPLIED"
        assert record["outcomes"] == [{"index": 0, "status": "SUCCEEDED"}]


class TestScheduledActionRepository:
    """Test suite for deferred jobs."""

    def _schedule(self, db_engine, account, run_at, index=0):
        return scheduled_action_repository.schedule_action(
            db_engine,
            account_id=account.id,
            rule_id="r1",
            message_id="m1",
            thread_id="t1",
            action_index=index,
            action=Action(type=ActionType.ARCHIVE, delay_in_minutes=5),
            run_at=run_at,
        )

    def test_schedule_is_idempotent(self, db_engine, account) -> None:
        """The same key is scheduled once."""
        now = datetime.now(timezone.utc)

        job_id, created = self._schedule(db_engine, account, now)
        again_id, again_created = self._schedule(db_engine, account, now + timedelta(hours=1))

        assert created is True
        assert again_created is False
        assert again_id == job_id

    def test_list_due_and_claim(self, db_engine, account) -> None:
        """Only due jobs are listed and a claim succeeds once."""
        now = datetime.now(timezone.utc)
        due_id, _ = self._schedule(db_engine, account, now - timedelta(minutes=1), index=0)
        self._schedule(db_engine, account, now + timedelta(minutes=30), index=1)

        due = scheduled_action_repository.list_due(db_engine, now)

        assert [j.id for j in due] == [due_id]
        assert due[0].action.type is ActionType.ARCHIVE
        assert scheduled_action_repository.claim_job(db_engine, due_id) is True
        assert scheduled_action_repository.claim_job(db_engine, due_id) is False
        assert scheduled_action_repository.list_due(db_engine, now) == []

    def test_finish_job(self, db_engine, account) -> None:
        """Finished jobs record their status and error; others stay pending."""
        now = datetime.now(timezone.utc)
        done_id, _ = self._schedule(db_engine, account, now, index=0)
        other_id, _ = self._schedule(db_engine, account, now, index=1)

        scheduled_action_repository.claim_job(db_engine, done_id)
        scheduled_action_repository.finish_job(
            db_engine, done_id, status=scheduled_action_repository.STATUS_FAILED, error="boom"
        )

        job = scheduled_action_repository.get_job(db_engine, done_id)
        assert job.status == "FAILED"
        assert job.error == "boom"
        assert scheduled_action_repository.get_job(db_engine, other_id).status == "PENDING"


class TestDigestRepository:
    """Test suite for the digest queue."""

    def test_enqueue_once_per_rule(self, db_engine, account, make_message) -> None:
        """A message is queued once per rule until sent."""
        message = make_message()

        assert digest_repository.enqueue_digest_item(db_engine, account_id=account.id, rule_id="r1", message=message)
        assert not digest_repository.enqueue_digest_item(db_engine, account_id=account.id, rule_id="r1", message=message)

        pending = digest_repository.list_pending_digest(db_engine, account.id)
        assert [p["subject"] for p in pending] == ["Quarterly invoice"]

        digest_repository.mark_digest_sent(db_engine, [p["id"] for p in pending])
        assert digest_repository.list_pending_digest(db_engine, account.id) == []
