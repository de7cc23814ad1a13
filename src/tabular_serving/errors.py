# tabular_serving/errors.py
"""
Error and warning types shared by preprocessing and serving.

Warnings are non-fatal and go through the `warnings` module so callers can
filter or record them. Exceptions are per-request (FeatureError, NotReadyError)
or per-session (ModelLoadError).
"""

from typing import List, Optional


class ConfigLoadWarning(UserWarning):
    """Preprocessor config missing fields or unreadable; an empty config is used."""


class UnknownCategoryWarning(UserWarning):
    """A categorical value was not in the vocabulary and got the fallback code."""


class TabularServingError(Exception):
    pass


class ModelLoadError(TabularServingError):
    pass


class NotReadyError(TabularServingError):
    pass


class FeatureError(TabularServingError, ValueError):
    """Raised when a record cannot be turned into a numeric feature vector."""

    def __init__(self, message: str, feature: Optional[str] = None, expected: Optional[List[str]] = None):
        super().__init__(message)
        self.feature = feature
        self.expected = list(expected) if expected is not None else None
