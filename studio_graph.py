"""
LangGraph Studio compatible graph definition.

Exposes the answer pipeline (edge cases → intent → route → validate → capture)
as ``graph``. Input is a TurnState with ``conversation`` and ``text``.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from blueprint_coach.flows.conversation_flow import build_turn_graph

graph = build_turn_graph()
