"""
Core types for item-stream.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, TypeAlias, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

StreamMode: TypeAlias = Literal["structured", "raw-text"]

TimeoutProfile: TypeAlias = Literal["quick", "standard", "extended"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ArrayPath:
    """
    Location of the target array inside the generated document.

    Stored as an ordered tuple of keys so callers never split dotted
    strings themselves.
    """

    keys: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.keys or any(not key for key in self.keys):
            raise ValueError(f"Invalid array path: {'.'.join(self.keys)!r}")

    @classmethod
    def parse(cls, dotted: str) -> ArrayPath:
        """Build a path from its dotted form, e.g. ``data.potential_causes``."""
        return cls(tuple(dotted.strip().split(".")))

    def resolve(self, document: Any) -> Any | None:
        """Walk the path through nested mappings. Returns None when any key is absent."""
        current = document
        for key in self.keys:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
            if current is None:
                return None
        return current

    def __str__(self) -> str:
        return ".".join(self.keys)


class CompletenessRule(BaseModel):
    """Per item-type definition of what a finished element looks like."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    identity_field: str = Field(validation_alias=AliasChoices("identity_field", "idField"))
    required_fields: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("required_fields", "requiredFields")
    )
    min_lengths: dict[str, int] = Field(
        default_factory=dict, validation_alias=AliasChoices("min_lengths", "minLengths")
    )
    optional_fields: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("optional_fields", "optionalFields")
    )
    display_name: str = Field(default="", validation_alias=AliasChoices("display_name", "displayName"))
    array_path: str | None = Field(default=None, validation_alias=AliasChoices("array_path", "arrayPath"))
    """Default location of the item array when a request does not name one."""
    timeout_profile: TimeoutProfile = Field(
        default="quick", validation_alias=AliasChoices("timeout_profile", "timeoutProfile")
    )

    @property
    def checked_fields(self) -> tuple[str, ...]:
        """Identity first, then required fields, then any other field with a minimum length."""
        ordered = [self.identity_field, *self.required_fields, *self.min_lengths]
        return tuple(dict.fromkeys(ordered))

    @property
    def primary_display_field(self) -> str:
        if "name_localized" in self.required_fields:
            return "name_localized"
        return self.required_fields[0] if self.required_fields else self.identity_field


class DeliveryRecord(BaseModel):
    """One cleaned array element, ready to send."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type_name: str
    array_path: str
    index: int
    payload: dict[str, Any]


class StreamRequest(BaseModel):
    """A request to generate and progressively deliver one item array."""

    model_config = ConfigDict(extra="forbid")

    item_type: str
    array_path: str | None = None
    """Dotted path to the item array. Defaults to the rule's path, then ``data.<item_type>``."""
    input_payload: dict[str, Any] = Field(default_factory=dict)
    mode: StreamMode = "structured"
    feature: str | None = None
    step: str | None = None

    @field_validator("item_type")
    @classmethod
    def _item_type_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("item_type must not be blank")
        return value.strip()

    @field_validator("array_path")
    @classmethod
    def _array_path_well_formed(cls, value: str | None) -> str | None:
        if value is not None:
            ArrayPath.parse(value)
        return value

    def resolve_path(self, rule: CompletenessRule | None = None) -> ArrayPath:
        if self.array_path:
            return ArrayPath.parse(self.array_path)
        if rule is not None and rule.array_path:
            return ArrayPath.parse(rule.array_path)
        return ArrayPath(("data", self.item_type))


# Wire events

class StreamStats(BaseModel):
    """Producer-side counters reported with the terminal event."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    chunks: int = 0
    items_sent: int = Field(default=0, alias="itemsSent")
    buffer_length: int = Field(default=0, alias="bufferLength")


class ItemEvent(BaseModel):
    """A complete array element was delivered."""

    model_config = ConfigDict(extra="forbid")
    type: Literal["item"] = "item"
    field: str
    index: int
    data: dict[str, Any]
    timestamp: str = Field(default_factory=_now_iso)

    @classmethod
    def from_record(cls, record: DeliveryRecord) -> ItemEvent:
        return cls(field=record.array_path, index=record.index, data=dict(record.payload))


class TextEvent(BaseModel):
    """A verbatim chunk forwarded in raw-text mode."""

    model_config = ConfigDict(extra="forbid")
    type: Literal["text"] = "text"
    content: str
    timestamp: str = Field(default_factory=_now_iso)


class CompleteEvent(BaseModel):
    """Terminal success event carrying the authoritative document."""

    model_config = ConfigDict(extra="forbid")
    type: Literal["complete"] = "complete"
    data: Any = None
    stats: StreamStats = Field(default_factory=StreamStats)
    timestamp: str = Field(default_factory=_now_iso)


class ErrorEvent(BaseModel):
    """Terminal failure event."""

    model_config = ConfigDict(extra="forbid")
    type: Literal["error"] = "error"
    message: str
    timestamp: str = Field(default_factory=_now_iso)


StreamEvent = Annotated[
    Union[ItemEvent, TextEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

TerminalEvent: TypeAlias = CompleteEvent | ErrorEvent


class ExchangeState(str, Enum):
    """Lifecycle of one supervised exchange."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExchangeState.COMPLETED, ExchangeState.FAILED, ExchangeState.CANCELLED)


class AccumulationState(BaseModel):
    """What the receiving side has reconstructed so far."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    partial_items: list[Any] = Field(default_factory=list)
    streaming_text: str = ""
    is_active: bool = False
    is_done: bool = False
    final_result: Any = None
    last_error: str | None = None
