"""mindspace - a multi-document mind-map workspace."""

__version__ = "1.0.0"
