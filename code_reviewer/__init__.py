"""Batch code review of GitHub repositories with Gemini."""

__version__ = "0.1.0"
