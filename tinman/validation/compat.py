"""Compatibility checks between the v2 schemas and their legacy shapes.

Used before turning off legacy tool-schema export: every shipped schema is
validated with both generations against a representative sample, and the
two results must serialize identically.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic import v1 as pydantic_v1

from tinman.schemas.compat import CompatibilityReport, PerformanceMetrics, SchemaCheck
from tinman.validation.adapter import create_streaming_schema

logger = logging.getLogger(__name__)


def _check(name: str, model: type[BaseModel], sample: Any) -> SchemaCheck:
    schema = create_streaming_schema(model)
    try:
        current = schema.validate(sample).model_dump(mode="json", by_alias=True)
    except ValidationError as e:
        return SchemaCheck(name=name, compatible=False, error=f"current schema rejected sample: {e}")
    try:
        legacy = json.loads(schema.legacy_schema.parse_obj(sample).json(by_alias=True))
    except pydantic_v1.ValidationError as e:
        return SchemaCheck(name=name, compatible=False, error=f"legacy schema rejected sample: {e}")

    if current != legacy:
        return SchemaCheck(
            name=name, compatible=False,
            error=f"serialized output differs: {current!r} != {legacy!r}",
        )
    if schema.diagnostics:
        return SchemaCheck(name=name, compatible=False, error="; ".join(schema.diagnostics))
    return SchemaCheck(name=name, compatible=True)


def check_streaming_compatibility(model: type[BaseModel], sample: Any) -> bool:
    """Return True when both schema generations accept the sample identically."""
    result = _check(model.__name__, model, sample)
    if not result.compatible:
        logger.warning("Schema %s is not stream-compatible: %s", model.__name__, result.error)
    return result.compatible


def measure_conversion_performance(
    model: type[BaseModel],
    sample: Any,
    iterations: int = 1000,
) -> PerformanceMetrics:
    """Time repeated validation of a sample with both schema generations.

    Args:
        model: The v2 model to measure.
        sample: A payload accepted by the model.
        iterations: Number of validations per generation.

    Returns:
        PerformanceMetrics with total seconds for each side and the percent
        improvement of the current side over the legacy one.
    """
    schema = create_streaming_schema(model)

    start = time.perf_counter()
    for _ in range(iterations):
        schema.validate(sample)
    current_seconds = time.perf_counter() - start

    start = time.perf_counter()
    for _ in range(iterations):
        schema.legacy_schema.parse_obj(sample)
    legacy_seconds = time.perf_counter() - start

    improvement = 0.0
    if legacy_seconds > 0:
        improvement = (legacy_seconds - current_seconds) / legacy_seconds * 100
    return PerformanceMetrics(
        current_seconds=current_seconds,
        legacy_seconds=legacy_seconds,
        improvement=round(improvement, 2),
    )


def _shipped_samples() -> list[tuple[str, type[BaseModel], Any]]:
    # Deferred imports: these modules import the adapter themselves.
    from tinman.artifacts.code import CodeArtifact
    from tinman.artifacts.sheet import SheetArtifact
    from tinman.schemas.request import UserMessage
    from tinman.tools.create_document import CreateDocumentInput
    from tinman.tools.get_weather import WeatherInput
    from tinman.tools.request_suggestions import SuggestionDraft

    return [
        ("message parts", UserMessage, {
            "id": "6f1c1a4e-8a57-4c1b-9a7e-2f0d5b8e9c11",
            "role": "user",
            "parts": [
                {"type": "text", "text": "Hello"},
                {
                    "type": "file",
                    "mediaType": "image/png",
                    "name": "chart.png",
                    "url": "https://files.example.com/chart.png",
                },
            ],
        }),
        ("create document", CreateDocumentInput, {"title": "Test", "kind": "text"}),
        ("weather", WeatherInput, {"latitude": 40.7128, "longitude": -74.006}),
        ("code artifact", CodeArtifact, {"code": "print('hello')"}),
        ("sheet artifact", SheetArtifact, {"csv": "name,score\nada,10"}),
        ("suggestion", SuggestionDraft, {
            "original_sentence": "Its a test.",
            "suggested_sentence": "It's a test.",
            "description": "Apostrophe",
        }),
    ]


def _recommend(issues: list[str], performance: PerformanceMetrics | None) -> str:
    if len(issues) > 2:
        return "Defer migration: resolve the reported schema issues first."
    if issues:
        return "Selective migration: switch compatible schemas and keep legacy export for the rest."
    improvement = performance.improvement if performance else 0.0
    if improvement > 50:
        return "Full migration: all schemas are compatible and validation is much faster."
    if improvement > 20:
        return "Moderate migration: schemas are compatible with a meaningful speedup."
    return "Cautious migration: schemas are compatible but the speedup is small."


def assess_compatibility(iterations: int = 200) -> CompatibilityReport:
    """Check every shipped schema and summarize migration readiness."""
    tested: list[SchemaCheck] = []
    issues: list[str] = []

    for name, model, sample in _shipped_samples():
        result = _check(name, model, sample)
        tested.append(result)
        if not result.compatible:
            issues.append(f"{name}: {result.error}")

    from tinman.artifacts.code import CodeArtifact

    performance = measure_conversion_performance(
        CodeArtifact, {"code": "print('hello')"}, iterations=iterations,
    )

    report = CompatibilityReport(
        compatible=not issues,
        issues=issues,
        recommendation=_recommend(issues, performance),
        tested_schemas=tested,
        performance=performance,
    )
    logger.info(
        "Compatibility assessed: %d schemas, %d issues", len(tested), len(issues),
    )
    return report
