"""Conversation persistence and autosave."""
