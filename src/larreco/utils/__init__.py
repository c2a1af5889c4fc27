"""Utilities shared across the package (logging, timing, factories)."""
