"""Lighthouse: record objects by image and voice label, identify them later."""

__version__ = "0.1.0"
