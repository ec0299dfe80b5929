"""Tests for readiness.lib.validate module."""

import pytest

from readiness.lib.validate import SchemaValidationError, parse_and_validate, validate

from conftest import suggestion_payload


class TestValidate:
    """Test validate against the bundled schemas."""

    def test_valid_suggestions(self):
        validate(suggestion_payload(), "task_suggestions")

    def test_empty_suggestions_rejected(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            validate({"suggestions": []}, "task_suggestions")
        assert exc_info.value.schema_name == "task_suggestions"

    def test_confidence_out_of_range(self):
        payload = suggestion_payload(1)
        payload["suggestions"][0]["confidence"] = 140
        with pytest.raises(SchemaValidationError) as exc_info:
            validate(payload, "task_suggestions")
        assert exc_info.value.path == "suggestions.0.confidence"

    def test_unknown_category_rejected(self):
        payload = {
            "summary": "",
            "recommendations": [
                {"category": "vibes", "priority": "low", "title": "t", "description": "d"},
            ],
        }
        with pytest.raises(SchemaValidationError):
            validate(payload, "task_analysis")

    def test_acceptance_criteria(self):
        validate({"criteria": [{"ac_id": "AC1", "given": "g", "when": "w", "then": "t"}]}, "acceptance_criteria")

    def test_criterion_missing_then(self):
        with pytest.raises(SchemaValidationError):
            validate({"criteria": [{"ac_id": "AC1", "given": "g", "when": "w"}]}, "acceptance_criteria")

    def test_unknown_schema(self):
        with pytest.raises(SchemaValidationError, match="not found"):
            validate({}, "no_such_schema")


class TestParseAndValidate:
    """Test parse_and_validate."""

    def test_parses(self):
        assert parse_and_validate('{"summary": "ok", "recommendations": []}', "task_analysis")["summary"] == "ok"

    def test_invalid_json(self):
        with pytest.raises(SchemaValidationError, match="Invalid JSON"):
            parse_and_validate("{nope", "task_analysis")
