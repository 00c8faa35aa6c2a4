"""
Custom registration forms.

Organizers attach a list of field definitions to an event. Each definition
is tagged by `field_type` and validated as a discriminated union; answers
submitted with a registration (or a team response) are checked against it:
required fields must be present, single-select answers must be one of the
options, multi-select answers a list of options, file answers a URL.

Answers are keyed by field label.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AnyHttpUrl, BaseModel, Field, TypeAdapter, ValidationError, field_validator

from campusfest.core.errors import RejectionReason, ValidationFailed


class _FieldBase(BaseModel):
    label: str = Field(..., min_length=1, max_length=200)
    required: bool = False

    def clean(self, value: Any) -> Any:
        raise NotImplementedError


class TextField(_FieldBase):
    field_type: Literal["text"] = "text"
    max_length: int = Field(default=500, gt=0)

    def clean(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("must be text")
        if len(value) > self.max_length:
            raise ValueError(f"must be at most {self.max_length} characters")
        return value.strip()


class TextAreaField(TextField):
    field_type: Literal["textarea"] = "textarea"
    max_length: int = Field(default=5000, gt=0)


class DropdownField(_FieldBase):
    """Single choice from a fixed list."""

    field_type: Literal["dropdown"] = "dropdown"
    options: list[str] = Field(..., min_length=1)

    @field_validator("options")
    @classmethod
    def options_unique(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("options must be unique")
        return v

    def clean(self, value: Any) -> str:
        if value not in self.options:
            raise ValueError(f"must be one of: {', '.join(self.options)}")
        return value


class CheckboxField(DropdownField):
    """Any subset of a fixed list."""

    field_type: Literal["checkbox"] = "checkbox"

    def clean(self, value: Any) -> list[str]:
        if not isinstance(value, list):
            raise ValueError("must be a list of options")
        unknown = [v for v in value if v not in self.options]
        if unknown:
            raise ValueError(f"unknown options: {', '.join(map(str, unknown))}")
        if self.required and not value:
            raise ValueError("select at least one option")
        # keep definition order, drop duplicates
        return [option for option in self.options if option in value]


_url_adapter = TypeAdapter(AnyHttpUrl)


class FileField(_FieldBase):
    """Reference to an already uploaded file."""

    field_type: Literal["file"] = "file"

    def clean(self, value: Any) -> str:
        try:
            return str(_url_adapter.validate_python(value))
        except ValidationError:
            raise ValueError("must be a file URL")


FormField = Annotated[
    Union[TextField, TextAreaField, DropdownField, CheckboxField, FileField],
    Field(discriminator="field_type"),
]

form_definition_adapter = TypeAdapter(list[FormField])


def parse_form_definition(raw: Optional[list[dict]]) -> list[FormField]:
    fields = form_definition_adapter.validate_python(raw or [])
    labels = [f.label for f in fields]
    if len(set(labels)) != len(labels):
        raise ValueError("form field labels must be unique")
    return fields


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def validate_form_responses(definition: Optional[list[dict]], responses: Optional[dict]) -> dict:
    """
    Check answers against an event's form definition.

    Returns the cleaned answers. Raises ValidationFailed listing every
    problem, keyed by field label.
    """
    fields = parse_form_definition(definition)
    responses = responses or {}
    known = {f.label: f for f in fields}
    problems: dict[str, str] = {}
    cleaned: dict[str, Any] = {}

    for label in responses:
        if label not in known:
            problems[label] = "unknown field"

    for field in fields:
        value = responses.get(field.label)
        if _is_blank(value):
            if field.required:
                problems[field.label] = "this field is required"
            continue
        try:
            cleaned[field.label] = field.clean(value)
        except ValueError as exc:
            problems[field.label] = str(exc)

    if problems:
        raise ValidationFailed(
            RejectionReason.INVALID_FORM_RESPONSE,
            "Some form answers are missing or invalid.",
            fields=problems,
        )
    return cleaned
