"""Tests for field definitions and dynamic submission validation."""

import pytest
from pydantic import ValidationError

from app.domain.fields import DEFAULT_FIELDS, EmailField, SelectField, parse_fields, validate_submission

pytestmark = pytest.mark.unit


def test_none_means_default_fields():
    fields = parse_fields(None)
    assert [f.name for f in fields] == ["email", "message"]
    assert isinstance(fields[0], EmailField)
    assert fields[1].required is True
    assert len(DEFAULT_FIELDS) == 2


def test_discriminates_on_type():
    fields = parse_fields([
        {"name": "plan", "label": "Plan", "type": "select", "options": [{"value": "a", "label": "A"}]},
    ])
    assert isinstance(fields[0], SelectField)


@pytest.mark.parametrize(
    "raw",
    [
        [{"name": "1bad", "label": "x", "type": "text"}],
        [{"name": "ok", "label": "x", "type": "color"}],
        [{"name": "ok", "label": "", "type": "text"}],
        [{"name": "dup", "label": "a", "type": "text"}, {"name": "DUP", "label": "b", "type": "text"}],
        [{"name": "pick", "label": "x", "type": "select", "options": []}],
        [{"name": f"f{i}", "label": "x", "type": "text"} for i in range(21)],
    ],
)
def test_invalid_definitions(raw):
    with pytest.raises(ValidationError):
        parse_fields(raw)


def test_twenty_fields_allowed():
    assert len(parse_fields([{"name": f"f{i}", "label": "x", "type": "text"} for i in range(20)])) == 20


def test_default_fields_accept_message_only():
    clean, errors = validate_submission(parse_fields(None), {"message": "  hello  "})
    assert errors == []
    assert clean == {"message": "hello"}


def test_required_field_missing_or_blank():
    fields = parse_fields(None)

    clean, errors = validate_submission(fields, {"email": "a@example.com"})
    assert clean is None
    assert errors[0]["field"] == "message"

    clean, errors = validate_submission(fields, {"message": "   "})
    assert clean is None
    assert errors[0]["field"] == "message"


def test_optional_email_may_be_empty_but_not_invalid():
    fields = parse_fields(None)

    clean, errors = validate_submission(fields, {"email": "", "message": "hi"})
    assert errors == []
    assert clean["email"] == ""

    clean, errors = validate_submission(fields, {"email": "not-an-email", "message": "hi"})
    assert clean is None
    assert errors[0]["field"] == "email"


def test_typed_fields():
    fields = parse_fields([
        {"name": "age", "label": "Age", "type": "number", "required": True, "min": 0, "max": 120},
        {"name": "plan", "label": "Plan", "type": "select", "required": True,
         "options": [{"value": "basic", "label": "Basic"}, {"value": "pro", "label": "Pro"}]},
        {"name": "nick", "label": "Nick", "type": "text", "max_length": 5},
    ])

    clean, errors = validate_submission(fields, {"age": 30, "plan": "pro", "nick": "bob", "extra": "dropped"})
    assert errors == []
    assert clean == {"age": 30.0, "plan": "pro", "nick": "bob"}

    _, errors = validate_submission(fields, {"age": 130, "plan": "pro"})
    assert [e["field"] for e in errors] == ["age"]

    _, errors = validate_submission(fields, {"age": 1, "plan": "gold"})
    assert [e["field"] for e in errors] == ["plan"]

    _, errors = validate_submission(fields, {"age": 1, "plan": "pro", "nick": "toolong"})
    assert [e["field"] for e in errors] == ["nick"]


@pytest.mark.parametrize("name", ["model_config", "model_dump", "model_fields", "schema"])
def test_field_names_reserved_by_pydantic_still_validate(name):
    fields = parse_fields([{"name": name, "label": "Reserved", "type": "text", "required": True}])

    clean, errors = validate_submission(fields, {name: " hi "})
    assert errors == []
    assert clean == {name: "hi"}

    clean, errors = validate_submission(fields, {})
    assert clean is None
    assert errors[0]["field"] == name
