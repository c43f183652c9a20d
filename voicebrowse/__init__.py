"""Voice-controlled browser automation daemon."""

__version__ = "0.1.0"
