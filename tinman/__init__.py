"""Tinman: resumable, schema-validated chat streaming with live artifacts."""

__version__ = "0.4.0"
