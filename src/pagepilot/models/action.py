"""Action models for scripted page interaction.

An action is a small, immutable command the caller asks us to perform on
a live page. The wire shape is a JSON object discriminated by ``type``::

    {"type": "click", "selector": "#submit"}
    {"type": "type", "selector": "#email", "text": "jane@example.com"}
    {"type": "scroll", "y": 1200}
    {"type": "wait", "ms": 1500}
    {"type": "waitForSelector", "selector": ".results"}
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from pagepilot.exceptions import InvalidRequestError, UnknownActionError


class ActionType(str, Enum):
    """Interaction commands the executor understands."""

    CLICK = "click"
    TYPE = "type"
    SCROLL = "scroll"
    WAIT = "wait"
    WAIT_FOR_SELECTOR = "waitForSelector"


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class ClickAction(_ActionBase):
    """Move the pointer onto the element and click it."""

    type: Literal["click"] = "click"
    selector: str = Field(..., min_length=1)


class TypeAction(_ActionBase):
    """Focus the element and type *text* one keystroke at a time."""

    type: Literal["type"] = "type"
    selector: str = Field(..., min_length=1)
    text: str


class ScrollAction(_ActionBase):
    """Smooth-scroll the window to an absolute vertical offset."""

    type: Literal["scroll"] = "scroll"
    y: float


class WaitAction(_ActionBase):
    """Pause for *ms* milliseconds (capped by the executor)."""

    type: Literal["wait"] = "wait"
    ms: int = Field(..., ge=0)


class WaitForSelectorAction(_ActionBase):
    """Wait for *selector* to become visible."""

    type: Literal["waitForSelector"] = "waitForSelector"
    selector: str = Field(..., min_length=1)


Action = Annotated[
    Union[ClickAction, TypeAction, ScrollAction, WaitAction, WaitForSelectorAction],
    Field(discriminator="type"),
]

_ACTION_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)
_KNOWN_TYPES = frozenset(t.value for t in ActionType)


def parse_action(raw: Any) -> Action:
    """Validate a caller-supplied action.

    Args:
        raw: An action model or a mapping in the wire shape.

    Returns:
        The typed, immutable action.

    Raises:
        UnknownActionError: ``type`` is not a supported action kind.
        InvalidRequestError: The object is not a mapping, has no ``type``,
            or its fields do not validate.
    """
    if isinstance(raw, _ActionBase):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, Mapping):
        raise InvalidRequestError(f"Action must be an object, got {type(raw).__name__}")

    action_type = raw.get("type")
    if not action_type:
        raise InvalidRequestError("Action is missing 'type'")
    if not isinstance(action_type, str):
        raise InvalidRequestError(f"Action 'type' must be a string, got {type(action_type).__name__}")
    if action_type not in _KNOWN_TYPES:
        raise UnknownActionError(str(action_type))

    try:
        return _ACTION_ADAPTER.validate_python(dict(raw))
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) or "?" for err in exc.errors())
        raise InvalidRequestError(f"Invalid {action_type} action (fields: {fields})") from exc


def parse_actions(raw_actions: Iterable[Any] | None) -> list[Action]:
    """Validate a whole action script; the first bad entry fails the lot."""
    if raw_actions is None:
        return []
    if isinstance(raw_actions, (str, bytes, Mapping)):
        raise InvalidRequestError("Actions must be a list")
    return [parse_action(a) for a in raw_actions]


class ActionOutcome(BaseModel):
    """Result of a one-shot interaction (``interact_once``)."""

    url: str
    action: str
    success: bool
    error: str | None = None
