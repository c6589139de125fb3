"""Turns a growing speech transcript into non-duplicated UI actions."""

__version__ = "0.1.0"
