"""Schema compatibility report models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SchemaCheck(BaseModel):
    """Result of checking one schema against both validator generations."""

    name: str = Field(description="Schema name")
    compatible: bool = Field(description="Both generations accept the sample identically")
    error: str | None = Field(default=None, description="Failure detail, if any")


class PerformanceMetrics(BaseModel):
    """Validation timing for the current and legacy schema shapes."""

    current_seconds: float = Field(ge=0.0, description="Total time for pydantic v2 validation")
    legacy_seconds: float = Field(ge=0.0, description="Total time for pydantic.v1 validation")
    improvement: float = Field(description="Percent faster than the legacy shape")


class CompatibilityReport(BaseModel):
    """Outcome of assessing the shipped schemas for migration readiness."""

    compatible: bool = Field(description="True when no schema reported an issue")
    issues: list[str] = Field(default_factory=list, description="Human-readable issues")
    recommendation: str = Field(description="Suggested migration approach")
    tested_schemas: list[SchemaCheck] = Field(
        default_factory=list, description="Per-schema results",
    )
    performance: PerformanceMetrics | None = Field(
        default=None, description="Timing measured on the code artifact schema",
    )
