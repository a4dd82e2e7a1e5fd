"""Shared fixtures for blueprint coach tests."""

import pytest

from blueprint_coach.config.settings import EngineSettings
from blueprint_coach.flows.conversation_flow import ConversationEngine
from blueprint_coach.state.conversation_state import new_conversation_state

# One answer per step that the classifier routes to validation and the validator accepts
GOOD_ANSWERS = {
    "BigIdea": "Technology as a force for change",
    "EssentialQuestion": "How might we use technology to improve our community?",
    "Challenge": "Design a campaign that informs our community about local recycling",
    "Phases": "Investigate, Ideate, Prototype, Share",
    "Activities": "Interview local experts; build a prototype; present to families",
    "Resources": "Local librarian, city recycling center",
    "Milestones": "Research brief, prototype showcase, final presentation",
    "Rubric": "Inquiry depth, collaboration, quality of craft, reflection",
    "Impact": "Students present their campaigns to the city council",
}


@pytest.fixture
def settings():
    """Defaults with auto-advance off so every capture waits for confirm."""
    return EngineSettings(auto_advance_enabled=False)


@pytest.fixture
def engine(settings):
    return ConversationEngine(settings)


@pytest.fixture
def fresh_state():
    return new_conversation_state({"subject": "Science", "gradeLevel": "7th grade"})


def text(payload):
    return {"type": "text", "payload": payload}


def button(action):
    return {"type": "button", "payload": action}


def card(payload, source="card-selection"):
    return {"type": "card", "payload": {"text": payload, "source": source}}


def answer_and_confirm(engine, state, step_id):
    """Submit the known-good answer for ``step_id`` and confirm it."""
    result = engine.handle_event(state, text(GOOD_ANSWERS[step_id]))
    assert result.outcome == "captured", f"{step_id}: {result.outcome} / {result.reply_text}"
    return engine.handle_event(result.new_state, button("confirm"))


def complete_stage(engine, state, step_ids):
    """Answer every step of a stage from its welcome, ending in the review."""
    state = engine.handle_event(state, button("start")).new_state
    for step_id in step_ids:
        state = answer_and_confirm(engine, state, step_id).new_state
    return state
