"""Error taxonomy for the conversion and classification core."""

from __future__ import annotations


class MonkeyIdError(Exception):
    """Base class for all MonkeyID errors."""


class DecodeError(MonkeyIdError):
    """The named sample could not be found in the bundle or decoded."""


class AllocationError(MonkeyIdError):
    """A pixel buffer could not be allocated at the requested format/dimensions."""


class InferenceError(MonkeyIdError):
    """The classifier failed to build, failed to predict, or returned nothing."""


class NavigationError(MonkeyIdError):
    """A page turn would move past the first or last sample."""
