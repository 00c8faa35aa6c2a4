"""
Tests for custom form definitions and answer validation.
"""

import pytest
from pydantic import ValidationError

from campusfest.core.errors import RejectionReason, ValidationFailed
from campusfest.schemas.forms import parse_form_definition, validate_form_responses

FORM = [
    {"field_type": "text", "label": "Name on badge", "required": True, "max_length": 20},
    {"field_type": "textarea", "label": "Why join?"},
    {"field_type": "dropdown", "label": "Track", "options": ["AI", "Web", "Hardware"], "required": True},
    {"field_type": "checkbox", "label": "Meals", "options": ["Veg", "Vegan", "Halal"]},
    {"field_type": "file", "label": "Resume"},
]


def _problems(responses) -> dict:
    with pytest.raises(ValidationFailed) as exc_info:
        validate_form_responses(FORM, responses)
    assert exc_info.value.reason == RejectionReason.INVALID_FORM_RESPONSE
    return exc_info.value.extra["fields"]


def test_valid_answers_are_cleaned():
    cleaned = validate_form_responses(FORM, {
        "Name on badge": "  Ada  ",
        "Track": "AI",
        "Meals": ["Halal", "Veg", "Veg"],
        "Resume": "https://files.example.com/ada.pdf",
    })

    assert cleaned == {
        "Name on badge": "Ada",
        "Track": "AI",
        "Meals": ["Veg", "Halal"],
        "Resume": "https://files.example.com/ada.pdf",
    }


def test_missing_required_fields():
    assert _problems({}) == {
        "Name on badge": "this field is required",
        "Track": "this field is required",
    }


def test_every_problem_is_reported():
    problems = _problems({
        "Name on badge": "x" * 21,
        "Track": "Biology",
        "Meals": "Veg",
        "Resume": "not a url",
        "Shoe size": "42",
    })

    assert set(problems) == {"Name on badge", "Track", "Meals", "Resume", "Shoe size"}
    assert problems["Shoe size"] == "unknown field"
    assert "AI, Web, Hardware" in problems["Track"]


def test_no_form_accepts_nothing_else():
    assert validate_form_responses([], None) == {}
    with pytest.raises(ValidationFailed):
        validate_form_responses([], {"Anything": "goes"})


def test_definition_rejects_unknown_field_type():
    with pytest.raises(ValidationError):
        parse_form_definition([{"field_type": "signature", "label": "Sign here"}])


def test_definition_rejects_duplicate_options():
    with pytest.raises(ValidationError):
        parse_form_definition([{"field_type": "dropdown", "label": "Size", "options": ["S", "S"]}])


def test_definition_rejects_duplicate_labels():
    with pytest.raises(ValueError):
        parse_form_definition([
            {"field_type": "text", "label": "Name"},
            {"field_type": "textarea", "label": "Name"},
        ])
