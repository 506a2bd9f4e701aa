"""Accumulator and spend protocol."""
