"""Raw provider increments and parsed content deltas.

A generation provider yields raw increments. The DeltaParser turns them
into parsed deltas that the coordinator and artifact handlers consume.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

# ── Raw increments (provider output) ─────────────────────────────


class TextIncrement(BaseModel):
    """A plain text fragment."""

    type: Literal["text"] = "text"
    text: str = Field(description="New text in this increment")


class ObjectIncrement(BaseModel):
    """A partial-object snapshot from a schema-shaped generation call.

    Each snapshot holds the whole object parsed so far, not just the new
    part. Snapshots may be malformed mid-stream.
    """

    type: Literal["object"] = "object"
    value: Any = Field(description="Partial object parsed so far")


class ToolCallIncrement(BaseModel):
    """A complete tool invocation requested by the model."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str = Field(description="Provider-assigned call identifier")
    tool_name: str = Field(description="Name of the tool to invoke")
    arguments: Any = Field(default_factory=dict, description="Decoded call arguments")


class FinishIncrement(BaseModel):
    """Normal end-of-stream marker."""

    type: Literal["finish"] = "finish"
    reason: str = Field(default="stop", description="Provider finish reason")


RawIncrement = Union[TextIncrement, ObjectIncrement, ToolCallIncrement, FinishIncrement]


# ── Parsed deltas (parser output) ────────────────────────────────


class ParsedText(BaseModel):
    """A validated text fragment."""

    text: str = Field(description="Text to append")


class ParsedField(BaseModel):
    """A field of a structured object that changed since the previous increment."""

    field: str = Field(description="Field name")
    value: Any = Field(description="Current validated value of the field")
    delta: Any = Field(
        default=None,
        description="Appended suffix for growing strings, otherwise the full value",
    )
    replaced: bool = Field(
        default=False, description="True when the value does not extend the previous one",
    )


class ParsedToolCall(BaseModel):
    """A tool invocation awaiting input validation by the coordinator."""

    tool_call_id: str = Field(description="Provider-assigned call identifier")
    tool_name: str = Field(description="Name of the tool to invoke")
    arguments: Any = Field(default_factory=dict, description="Raw call arguments")


class ParsedFinish(BaseModel):
    """End of the parsed stream."""

    reason: str = Field(default="stop", description="Provider finish reason")


ParsedDelta = Union[ParsedText, ParsedField, ParsedToolCall, ParsedFinish]


class ParserStats(BaseModel):
    """Diagnostic counters kept by a DeltaParser."""

    received: int = Field(default=0, ge=0, description="Increments fed to the parser")
    emitted: int = Field(default=0, ge=0, description="Parsed deltas produced")
    dropped: int = Field(default=0, ge=0, description="Increments rejected by validation")
