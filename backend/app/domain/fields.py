"""Form field definitions and dynamic submission validation.

A form stores a list of field definitions (JSON). Public submissions are
validated against a pydantic model built from those definitions.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    RootModel,
    StringConstraints,
    ValidationError,
    create_model,
    model_validator,
)

MAX_FIELDS = 20
FIELD_NAME_PATTERN = r"^[a-zA-Z][a-zA-Z0-9_]*$"


class _FieldBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(min_length=1, max_length=50, pattern=FIELD_NAME_PATTERN)
    label: str = Field(min_length=1, max_length=200)
    required: bool = False
    placeholder: str | None = Field(default=None, max_length=200)


class TextField(_FieldBase):
    type: Literal["text"]
    min_length: int | None = Field(default=None, ge=0, le=1000)
    max_length: int | None = Field(default=None, ge=1, le=1000)


class EmailField(_FieldBase):
    type: Literal["email"]


class NumberField(_FieldBase):
    type: Literal["number"]
    min: float | None = None
    max: float | None = None


class TextareaField(_FieldBase):
    type: Literal["textarea"]
    min_length: int | None = Field(default=None, ge=0, le=10000)
    max_length: int | None = Field(default=None, ge=1, le=10000)


class SelectOption(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    value: str = Field(min_length=1, max_length=200)
    label: str = Field(min_length=1, max_length=200)


class SelectField(_FieldBase):
    type: Literal["select"]
    options: list[SelectOption] = Field(min_length=1, max_length=50)


FormField = Annotated[
    Union[TextField, EmailField, NumberField, TextareaField, SelectField],
    Field(discriminator="type"),
]


class FormFields(RootModel[list[FormField]]):
    """Ordered field list of a form: at most 20 entries, names unique ignoring case."""

    @model_validator(mode="after")
    def _check_list(self) -> "FormFields":
        if len(self.root) > MAX_FIELDS:
            raise ValueError(f"Maximum {MAX_FIELDS} fields allowed")
        names = [f.name.lower() for f in self.root]
        if len(set(names)) != len(names):
            raise ValueError("Field names must be unique")
        return self


DEFAULT_FIELDS: list[dict[str, Any]] = [
    {"name": "email", "label": "Email", "type": "email", "required": False, "placeholder": ""},
    {"name": "message", "label": "Message", "type": "textarea", "required": True, "placeholder": ""},
]


def parse_fields(raw: list[dict[str, Any]] | None) -> list[FormField]:
    """Validate stored or submitted field definitions; None means the defaults."""
    return FormFields.model_validate(DEFAULT_FIELDS if raw is None else raw).root


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _annotation_for(field: FormField) -> Any:
    if isinstance(field, (TextField, TextareaField)):
        min_length = field.min_length or 0
        if field.required:
            min_length = max(min_length, 1)
        base = Annotated[
            str,
            StringConstraints(strip_whitespace=True, min_length=min_length, max_length=field.max_length),
        ]
    elif isinstance(field, EmailField):
        base = Annotated[EmailStr, BeforeValidator(_strip)]
    elif isinstance(field, NumberField):
        base = Annotated[float, Field(ge=field.min, le=field.max)]
    else:
        base = Literal[tuple(option.value for option in field.options)]

    if field.required:
        return base
    return Union[base, Literal[""], None]


def build_submission_model(fields: list[FormField]) -> type[BaseModel]:
    """Create a pydantic model that validates a submission payload for ``fields``.

    Attributes are named positionally (``f0``, ``f1``, ...) and aliased to the
    field names, so names pydantic reserves (``model_config``, ``model_dump``)
    still validate like any other field.
    """
    definitions: dict[str, Any] = {}
    for index, field in enumerate(fields):
        annotation = _annotation_for(field)
        default = ... if field.required else None
        definitions[f"f{index}"] = (annotation, Field(default, alias=field.name))

    return create_model(
        "SubmissionPayload",
        __config__=ConfigDict(extra="ignore"),
        **definitions,
    )


def validate_submission(fields: list[FormField], payload: dict[str, Any]) -> tuple[dict[str, Any] | None, list[dict]]:
    """Validate a payload against field definitions.

    Returns ``(clean_payload, [])`` on success or ``(None, errors)`` where each
    error is ``{"field": name, "message": text}``, one per failing field.
    """
    model = build_submission_model(fields)
    attribute_names = {f"f{index}": field.name for index, field in enumerate(fields)}
    try:
        validated = model.model_validate(payload)
    except ValidationError as exc:
        errors = []
        seen = set()
        for err in exc.errors():
            loc = err.get("loc") or ("",)
            name = attribute_names.get(str(loc[0]), str(loc[0]))
            # Optional fields are unions, which report one error per member
            if name in seen:
                continue
            seen.add(name)
            errors.append({"field": name, "message": err.get("msg", "invalid")})
        return None, errors

    clean = validated.model_dump(mode="json", by_alias=True, exclude_unset=True)
    return clean, []
