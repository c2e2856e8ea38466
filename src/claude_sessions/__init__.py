"""Manage Claude Code session transcripts: list, read, edit, split and prune."""

__version__ = "0.1.0"
