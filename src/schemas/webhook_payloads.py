"""
Webhook payload schemas - typed decode of raw provider submissions.

Typeform answers are a tagged union on "type". Each variant knows how to turn
itself into the flat field value the driver mapping consumes, so there is no
probing of arbitrary keys at runtime.
"""
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter


class TypeformAnswerField(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    ref: str = ""
    type: str = ""


class _TypeformAnswerBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    field: TypeformAnswerField = Field(default_factory=TypeformAnswerField)


class BooleanAnswer(_TypeformAnswerBase):
    type: Literal["boolean"]
    boolean: bool = False

    def flat_value(self) -> bool:
        return self.boolean


class TypeformChoice(BaseModel):
    label: str = ""
    other: Optional[str] = None


class ChoiceAnswer(_TypeformAnswerBase):
    type: Literal["choice"]
    choice: TypeformChoice = Field(default_factory=TypeformChoice)

    def flat_value(self) -> str:
        return self.choice.label or self.choice.other or ""


class TypeformChoices(BaseModel):
    labels: list[str] = Field(default_factory=list)


class ChoicesAnswer(_TypeformAnswerBase):
    type: Literal["choices"]
    choices: TypeformChoices = Field(default_factory=TypeformChoices)

    def flat_value(self) -> str:
        return ", ".join(self.choices.labels)


class NumberAnswer(_TypeformAnswerBase):
    type: Literal["number"]
    number: float = 0

    def flat_value(self) -> str:
        return str(int(self.number))


class TextAnswer(_TypeformAnswerBase):
    """Every answer kind whose value is a single string under its own key."""
    type: Literal["text", "email", "phone_number", "date", "url", "file_url"]
    text: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    date: Optional[str] = None
    url: Optional[str] = None
    file_url: Optional[str] = None

    def flat_value(self) -> Optional[str]:
        for candidate in (
            self.text, self.email, self.phone_number,
            self.date, self.url, self.file_url,
        ):
            if candidate:
                return candidate
        return None


TypeformAnswer = Annotated[
    Union[BooleanAnswer, ChoiceAnswer, ChoicesAnswer, NumberAnswer, TextAnswer],
    Field(discriminator="type"),
]

typeform_answer_adapter: TypeAdapter[Any] = TypeAdapter(TypeformAnswer)


def _lenient_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _lenient_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


# Envelope scalars fall back to "" instead of rejecting the submission
LenientStr = Annotated[str, BeforeValidator(_lenient_str)]


class TypeformFormResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    form_id: LenientStr = ""
    token: LenientStr = ""
    submitted_at: LenientStr = ""
    hidden: Annotated[dict[str, Any], BeforeValidator(_lenient_dict)] = Field(default_factory=dict)
    hidden_email: LenientStr = ""
    # Decoded one by one so a single bad answer does not reject the payload
    answers: list[Any] = Field(default_factory=list)


class TypeformWebhook(BaseModel):
    """Typeform 'form_response' webhook envelope."""
    model_config = ConfigDict(extra="ignore")

    event_id: LenientStr = ""
    event_type: LenientStr = ""
    form_response: TypeformFormResponse = Field(default_factory=TypeformFormResponse)
