"""Generative model creation and suggestion generation."""
