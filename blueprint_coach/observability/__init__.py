# -*- coding: utf-8 -*-
"""Observability module for the blueprint coach.

Provides LangSmith integration for tracing and monitoring.
"""

from .langsmith_tracer import (
    create_custom_span,
    trace_generation,
    tracing_enabled,
)

__all__ = [
    'create_custom_span',
    'trace_generation',
    'tracing_enabled',
]
