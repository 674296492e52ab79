"""Unit tests for rule validation and the authoring schema."""

import pytest

from inbox_assistant.exceptions import ConfigurationError, ValidationError
from inbox_assistant.models import ActionType
from inbox_assistant.providers import ProviderCapability
from inbox_assistant.rules.schema import (
    action_json_schema,
    get_available_actions,
    get_extra_actions,
    validate_rule_document,
)


def _rule(*actions: dict, **condition) -> dict:
    return {
        "name": "Invoices",
        "condition": condition or {"aiInstructions": "Invoices from vendors"},
        "actions": list(actions),
    }


class TestAvailableActions:
    """Test suite for provider-dependent action sets."""

    def test_gmail_has_no_folders(self) -> None:
        """Gmail rules cannot move to folders."""
        actions = get_available_actions("google")

        assert ActionType.MOVE_FOLDER not in actions
        assert actions[0] is ActionType.LABEL

    def test_outlook_has_folders(self) -> None:
        """Outlook rules can move to folders."""
        assert ActionType.MOVE_FOLDER in get_available_actions("microsoft")

    def test_capability_set_accepted(self) -> None:
        """Capabilities can be passed directly."""
        assert ActionType.MOVE_FOLDER in get_available_actions({ProviderCapability.FOLDERS})

    def test_extra_actions(self) -> None:
        """Digest and webhooks are available everywhere."""
        assert get_extra_actions() == [ActionType.DIGEST, ActionType.CALL_WEBHOOK]

    def test_unknown_provider(self) -> None:
        """Unknown provider names are rejected."""
        with pytest.raises(ConfigurationError):
            get_available_actions("yahoo")


class TestValidateRuleDocument:
    """Test suite for validate_rule_document."""

    def test_valid_rule(self) -> None:
        """A well-formed camelCase document parses."""
        rule = validate_rule_document(
            _rule(
                {"type": "LABEL", "fields": {"label": "Invoices"}},
                {"type": "REPLY", "fields": {"content": "Hi {{sender name}}"}, "delayInMinutes": 60},
            ),
            "google",
        )

        assert rule.name == "Invoices"
        assert rule.condition.ai_instructions == "Invoices from vendors"
        assert rule.actions[1].delay_in_minutes == 60

    def test_null_fields_accepted(self) -> None:
        """Actions without fields may send null."""
        rule = validate_rule_document(_rule({"type": "ARCHIVE", "fields": None}), "google")

        assert rule.actions[0].fields.present() == {}

    def test_folder_name_rejected_without_folders(self) -> None:
        """folderName is rejected for providers without folders."""
        with pytest.raises(ValidationError, match="folderName"):
            validate_rule_document(
                _rule({"type": "LABEL", "fields": {"label": "x", "folderName": "Receipts"}}),
                "google",
            )

    def test_move_folder_rejected_for_gmail(self) -> None:
        """MOVE_FOLDER is not available to Gmail."""
        with pytest.raises(ValidationError, match="MOVE_FOLDER"):
            validate_rule_document(_rule({"type": "MOVE_FOLDER", "fields": {}}), "google")

    def test_move_folder_allowed_for_outlook(self) -> None:
        """Outlook accepts MOVE_FOLDER with a folder name."""
        rule = validate_rule_document(
            _rule({"type": "MOVE_FOLDER", "fields": {"folderName": "Receipts"}}), "microsoft"
        )

        assert rule.actions[0].fields.folder_name == "Receipts"

    @pytest.mark.parametrize(
        ("action", "field"),
        [
            ({"type": "LABEL", "fields": {}}, "label"),
            ({"type": "REPLY", "fields": {"content": "  "}}, "content"),
            ({"type": "FORWARD"}, "to"),
            ({"type": "CALL_WEBHOOK", "fields": {}}, "webhook_url"),
        ],
    )
    def test_required_fields(self, action: dict, field: str) -> None:
        """Actions that need a field reject documents without it."""
        with pytest.raises(ValidationError, match=field):
            validate_rule_document(_rule(action), "google")

    @pytest.mark.parametrize("delay", [0, -5, 43_201])
    def test_delay_bounds(self, delay: int) -> None:
        """Delays must be between one minute and thirty days."""
        with pytest.raises(ValidationError, match="delayInMinutes"):
            validate_rule_document(_rule({"type": "ARCHIVE", "delayInMinutes": delay}), "google")

    def test_malformed_template(self) -> None:
        """Unterminated placeholders are caught at authoring time."""
        with pytest.raises(ValidationError, match="content"):
            validate_rule_document(_rule({"type": "REPLY", "fields": {"content": "Hi {{name"}}), "google")

    def test_condition_needs_something(self) -> None:
        """A condition with neither AI instructions nor static fields is rejected."""
        with pytest.raises(ValidationError, match="condition"):
            validate_rule_document(_rule({"type": "ARCHIVE"}, static={"subject": ""}), "google")

    def test_unknown_keys_rejected(self) -> None:
        """Typos in field names are not silently dropped."""
        with pytest.raises(ValidationError):
            validate_rule_document(_rule({"type": "LABEL", "fields": {"lable": "x"}}), "google")

    def test_blank_name(self) -> None:
        """Rules must be named."""
        document = _rule({"type": "ARCHIVE"})
        document["name"] = "   "

        with pytest.raises(ValidationError, match="name"):
            validate_rule_document(document, "google")


class TestActionJsonSchema:
    """Test suite for the generated authoring schema."""

    def test_gmail_schema(self) -> None:
        """The Gmail schema omits folders."""
        schema = action_json_schema("google")
        defs = schema["$defs"]

        assert "MOVE_FOLDER" not in defs["ActionType"]["enum"]
        assert "DIGEST" in defs["ActionType"]["enum"]
        assert "folderName" not in defs["ActionFields"]["properties"]
        assert "{{}}" in defs["ActionFields"]["description"]

    def test_outlook_schema(self) -> None:
        """The Outlook schema includes folders and explains categories."""
        schema = action_json_schema("microsoft")
        defs = schema["$defs"]

        assert "MOVE_FOLDER" in defs["ActionType"]["enum"]
        assert "folderName" in defs["ActionFields"]["properties"]
        assert "Outlook" in defs["Action"]["properties"]["type"]["description"]
