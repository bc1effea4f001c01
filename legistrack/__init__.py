"""LegisTrack - congressional bill sync, AI tagging and tracking."""

__version__ = "0.1.0"
