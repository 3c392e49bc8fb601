"""
Exceptions shared by the models and detection packages.
"""

from __future__ import annotations


class DetectionError(Exception):
    """Base class for detection failures."""


class DecodeError(DetectionError, ValueError):
    """The cascade model blob is malformed or truncated."""


class InvalidImageError(DetectionError, ValueError):
    """Image dimensions do not match the pixel buffer."""


class ConfigurationError(DetectionError, ValueError):
    """A detector configuration value is out of range or unknown."""
