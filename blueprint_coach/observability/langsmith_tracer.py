"""LangSmith tracing helpers.

Spans are only emitted when tracing is switched on with LANGSMITH_TRACING or
LANGCHAIN_TRACING_V2. Otherwise every helper is a cheap no-op, so nodes can
wrap themselves in ``create_custom_span`` unconditionally.
"""

import functools
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from langsmith import trace, traceable


def tracing_enabled() -> bool:
    for name in ("LANGSMITH_TRACING", "LANGCHAIN_TRACING_V2"):
        if os.getenv(name, "false").strip().lower() in ("true", "1", "yes", "on"):
            return True
    return False


@contextmanager
def create_custom_span(name: str, inputs: Optional[Dict[str, Any]] = None) -> Iterator[Any]:
    """Open a LangSmith span around a block of engine work.

    Example:
        with create_custom_span("classify_intent", {"text": text[:120]}):
            result = classifier.classify(text, context)
    """
    if not tracing_enabled():
        yield None
        return

    with trace(name=name, run_type="chain", inputs=inputs or {}) as run:
        yield run


def trace_generation(func):
    """Decorate an async generation call as an LLM run when tracing is on."""
    traced = traceable(run_type="llm", name=func.__name__)(func)

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        if tracing_enabled():
            return await traced(*args, **kwargs)
        return await func(*args, **kwargs)

    return wrapper
