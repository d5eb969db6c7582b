"""Delta parser: raw provider increments to validated content deltas.

Text increments pass through. Object increments are partial snapshots of
a schema-shaped object; each is validated through the schema adapter and
only the fields that changed since the last valid snapshot are emitted.
Invalid snapshots are dropped and counted, because providers routinely
emit fragments that the next increment repairs.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from tinman.schemas.streaming import (
    FinishIncrement,
    ObjectIncrement,
    ParsedDelta,
    ParsedField,
    ParsedFinish,
    ParsedText,
    ParsedToolCall,
    ParserStats,
    RawIncrement,
    TextIncrement,
    ToolCallIncrement,
)
from tinman.validation.adapter import CompatibleSchema

logger = logging.getLogger(__name__)


def diff_field(field: str, previous: Any, current: Any) -> ParsedField:
    """Describe how one field moved from its previous value to the current one."""
    if isinstance(previous, str) and isinstance(current, str) and current.startswith(previous):
        return ParsedField(field=field, value=current, delta=current[len(previous):])
    return ParsedField(field=field, value=current, delta=current, replaced=previous is not None)


class DeltaParser:
    """Converts one generation call's raw increments into parsed deltas.

    A parser instance belongs to exactly one generation call. It keeps the
    last valid snapshot so it can emit only changed fields, and never
    reorders or holds back increments.
    """

    def __init__(self, schema: CompatibleSchema | None = None) -> None:
        self._schema = schema
        self._previous: dict[str, Any] = {}
        self._finished = False
        self.stats = ParserStats()

    @property
    def snapshot(self) -> dict[str, Any]:
        """Fields of the last valid object increment."""
        return dict(self._previous)

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, increment: RawIncrement) -> list[ParsedDelta]:
        """Parse one raw increment.

        Returns:
            Zero or more parsed deltas, in order.

        Raises:
            ValueError: If an object increment arrives on a parser that was
                created without a schema.
        """
        self.stats.received += 1

        if isinstance(increment, TextIncrement):
            out: list[ParsedDelta] = [ParsedText(text=increment.text)] if increment.text else []
        elif isinstance(increment, ObjectIncrement):
            out = self._feed_object(increment)
        elif isinstance(increment, ToolCallIncrement):
            out = [ParsedToolCall(
                tool_call_id=increment.tool_call_id,
                tool_name=increment.tool_name,
                arguments=increment.arguments,
            )]
        elif isinstance(increment, FinishIncrement):
            self._finished = True
            out = [ParsedFinish(reason=increment.reason)]
        else:
            raise TypeError(f"Unknown increment type: {type(increment).__name__}")

        self.stats.emitted += len(out)
        return out

    def _feed_object(self, increment: ObjectIncrement) -> list[ParsedDelta]:
        if self._schema is None:
            raise ValueError("Object increments require a parser created with a schema")

        try:
            fields = self._schema.validate_partial(increment.value)
        except ValidationError as e:
            self.stats.dropped += 1
            logger.debug(
                "Dropped invalid %s increment (%d so far): %s",
                self._schema.name, self.stats.dropped, e.errors()[0]["msg"],
            )
            return []

        changes: list[ParsedDelta] = []
        for name, value in fields.items():
            previous = self._previous.get(name)
            if previous == value:
                continue
            changes.append(diff_field(name, previous, value))
            self._previous[name] = value
        return changes
