"""Undo/redo-capable cleaning and transformation of tabular data."""

__version__ = "0.1.0"
