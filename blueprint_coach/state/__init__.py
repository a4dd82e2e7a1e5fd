"""Conversation state and the static stage graph."""
