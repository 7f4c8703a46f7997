"""Exception types raised by the toolpath services."""

from __future__ import annotations


class ToolpathError(Exception):
    """Base class for failures inside a generation task."""


class InputError(ToolpathError, ValueError):
    """The request is missing data or carries values that cannot be used."""


class GeometryError(ToolpathError):
    """The polygon kernel failed or returned an unusable result."""
