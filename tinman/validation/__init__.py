"""Schema validation across pydantic generations."""

from tinman.validation.adapter import CompatibleSchema, create_streaming_schema

__all__ = ["CompatibleSchema", "create_streaming_schema"]
