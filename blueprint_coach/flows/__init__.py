"""Conversation engine, node pipeline and session loop."""
