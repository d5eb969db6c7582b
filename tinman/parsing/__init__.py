"""Parsing of raw provider output into content deltas."""

from tinman.parsing.delta import DeltaParser, diff_field

__all__ = ["DeltaParser", "diff_field"]
