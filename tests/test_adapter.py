"""Tests for tinman.validation.adapter — v2 to pydantic.v1 schema bridge."""

from __future__ import annotations

import sys
import uuid
from typing import Literal, Optional

import pytest
from pydantic import BaseModel, Field, ValidationError
from pydantic import v1 as pydantic_v1

from tinman.artifacts.code import CODE_SCHEMA, CodeArtifact
from tinman.schemas.documents import ArtifactKind
from tinman.schemas.request import ChatRequest
from tinman.validation.adapter import CompatibleSchema, create_streaming_schema

legacy_only = pytest.mark.skipif(
    sys.version_info >= (3, 14), reason="pydantic.v1 is unsupported on Python 3.14+",
)


# ── Sample models ──────────────────────────────────────────────────


class Point(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class Draft(BaseModel):
    """A draft with bounded fields."""

    title: str = Field(min_length=1, max_length=10, description="Short title")
    slug: str = Field(pattern=r"^[a-z-]+$")
    kind: ArtifactKind = ArtifactKind.TEXT
    tags: list[str] = Field(default_factory=list, max_length=3)
    rating: Optional[int] = Field(default=None, gt=0, lt=6)
    origin: Point | None = None


class WithAlias(BaseModel):
    media_type: Literal["image/png"] = Field(alias="mediaType")


class Weird(BaseModel):
    blob: frozenset[int]


# ══════════════════════════════════════════════════════════════════
# Validation (v2 source of truth)
# ══════════════════════════════════════════════════════════════════


class TestValidate:
    def test_valid_payload_returns_model(self):
        schema = create_streaming_schema(Draft)
        draft = schema.validate({"title": "Hi", "slug": "hi-there"})
        assert isinstance(draft, Draft)
        assert draft.kind is ArtifactKind.TEXT

    def test_too_long_title_rejected(self):
        schema = create_streaming_schema(Draft)
        with pytest.raises(ValidationError):
            schema.validate({"title": "x" * 11, "slug": "ok"})

    def test_pattern_enforced(self):
        schema = create_streaming_schema(Draft)
        with pytest.raises(ValidationError):
            schema.validate({"title": "ok", "slug": "NOT OK"})

    def test_number_bounds_enforced(self):
        schema = create_streaming_schema(Point)
        with pytest.raises(ValidationError):
            schema.validate({"lat": 91, "lon": 0})

    def test_infer_type_and_name(self):
        schema = create_streaming_schema(Point)
        assert schema.infer_type is Point
        assert schema.name == "Point"

    def test_schema_is_cached(self):
        assert create_streaming_schema(Point) is create_streaming_schema(Point)
        assert isinstance(CODE_SCHEMA, CompatibleSchema)


# ══════════════════════════════════════════════════════════════════
# Partial validation
# ══════════════════════════════════════════════════════════════════


class TestValidatePartial:
    def test_missing_fields_are_allowed(self):
        schema = create_streaming_schema(Draft)
        assert schema.validate_partial({"title": "Hi"}) == {"title": "Hi"}

    def test_empty_object_is_valid(self):
        assert create_streaming_schema(Draft).validate_partial({}) == {}

    def test_present_invalid_field_rejected(self):
        schema = create_streaming_schema(Draft)
        with pytest.raises(ValidationError):
            schema.validate_partial({"title": "x" * 20})

    def test_field_order_follows_model(self):
        schema = create_streaming_schema(Draft)
        fields = schema.validate_partial({"slug": "a", "title": "b"})
        assert list(fields) == ["title", "slug"]

    def test_null_values_are_skipped(self):
        schema = create_streaming_schema(Draft)
        assert schema.validate_partial({"title": "a", "rating": None}) == {"title": "a"}

    def test_code_artifact_requires_non_empty(self):
        with pytest.raises(ValidationError):
            CODE_SCHEMA.validate_partial({"code": ""})
        assert CODE_SCHEMA.validate_partial({"code": "x"}) == {"code": "x"}

    def test_alias_accepted(self):
        schema = create_streaming_schema(WithAlias)
        assert schema.validate_partial({"mediaType": "image/png"}) == {"media_type": "image/png"}


# ══════════════════════════════════════════════════════════════════
# Legacy shape
# ══════════════════════════════════════════════════════════════════


@legacy_only
class TestLegacySchema:
    def test_legacy_model_is_v1(self):
        schema = create_streaming_schema(Draft)
        assert issubclass(schema.legacy_schema, pydantic_v1.BaseModel)
        assert schema.diagnostics == ()

    def test_legacy_keeps_string_bounds(self):
        legacy = create_streaming_schema(Draft).legacy_schema
        with pytest.raises(pydantic_v1.ValidationError):
            legacy.parse_obj({"title": "", "slug": "ok"})
        with pytest.raises(pydantic_v1.ValidationError):
            legacy.parse_obj({"title": "ok", "slug": "BAD SLUG"})

    def test_legacy_keeps_number_bounds(self):
        legacy = create_streaming_schema(Point).legacy_schema
        with pytest.raises(pydantic_v1.ValidationError):
            legacy.parse_obj({"lat": 0, "lon": 200})
        assert legacy.parse_obj({"lat": 1.5, "lon": 2}).lat == 1.5

    def test_legacy_keeps_list_bounds(self):
        legacy = create_streaming_schema(Draft).legacy_schema
        with pytest.raises(pydantic_v1.ValidationError):
            legacy.parse_obj({"title": "a", "slug": "a", "tags": ["1", "2", "3", "4"]})

    def test_nested_model_translated(self):
        legacy = create_streaming_schema(Draft).legacy_schema
        parsed = legacy.parse_obj({"title": "a", "slug": "a", "origin": {"lat": 1, "lon": 2}})
        assert isinstance(parsed.origin, pydantic_v1.BaseModel)

    def test_alias_preserved(self):
        legacy = create_streaming_schema(WithAlias).legacy_schema
        assert legacy.parse_obj({"mediaType": "image/png"}).media_type == "image/png"

    def test_chat_request_translates_cleanly(self):
        schema = create_streaming_schema(ChatRequest)
        assert schema.diagnostics == ()
        parsed = schema.legacy_schema.parse_obj({
            "id": str(uuid.uuid4()),
            "message": {
                "id": str(uuid.uuid4()),
                "role": "user",
                "parts": [{"type": "text", "text": "hi"}],
            },
            "selectedChatModel": "chat-model",
            "selectedVisibilityType": "private",
        })
        assert parsed.message.parts[0].text == "hi"

    def test_unknown_node_kind_becomes_any(self):
        schema = create_streaming_schema(Weird)
        assert len(schema.diagnostics) == 1
        assert "Weird.blob" in schema.diagnostics[0]
        # The legacy side accepts anything, the v2 side still validates
        schema.legacy_schema.parse_obj({"blob": "anything"})
        with pytest.raises(ValidationError):
            schema.validate({"blob": "anything"})

    def test_tool_parameters_legacy_export(self):
        params = create_streaming_schema(CodeArtifact).tool_parameters(legacy=True)
        assert params["title"] == "CodeArtifact"
        assert params["properties"]["code"]["minLength"] == 1
        assert params["required"] == ["code"]


class TestToolParameters:
    def test_current_export(self):
        params = create_streaming_schema(CodeArtifact).tool_parameters(legacy=False)
        assert params["properties"]["code"]["minLength"] == 1
        assert params["required"] == ["code"]
