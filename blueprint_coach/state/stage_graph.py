"""Static stage graph: stages, their ordered steps, and per-step metadata.

Pure data plus read-only lookups. Nothing here mutates or performs I/O.

Stage order:
    IDEATION (BigIdea → EssentialQuestion → Challenge)
    JOURNEY (Phases → Activities → Resources)
    DELIVERABLES (Milestones → Rubric → Impact)
    COMPLETE (terminal, no steps)

Stage and StepId are closed str Enums. Modules that dispatch per step
(validators, fallback cards, recap handlers) key their tables on StepId and
check coverage at import with ``assert_covers_all_steps`` so a new step cannot
be added without every table knowing about it.

Out-of-range lookups raise StageGraphError. That is an integration bug, never
something a user can trigger, so callers do not catch it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from blueprint_coach.errors import StageGraphError


class Stage(str, Enum):
    IDEATION = "IDEATION"
    JOURNEY = "JOURNEY"
    DELIVERABLES = "DELIVERABLES"
    COMPLETE = "COMPLETE"


class StepId(str, Enum):
    BIG_IDEA = "BigIdea"
    ESSENTIAL_QUESTION = "EssentialQuestion"
    CHALLENGE = "Challenge"
    PHASES = "Phases"
    ACTIVITIES = "Activities"
    RESOURCES = "Resources"
    MILESTONES = "Milestones"
    RUBRIC = "Rubric"
    IMPACT = "Impact"


@dataclass(frozen=True)
class StepDescriptor:
    """One question/field within a stage.

    Attributes:
        id: Step identifier, also the key in ConversationState.capturedData
        stage: Owning stage
        ordinal: Zero-based position within the stage
        label: Human-readable name used in prompts and confirmations
        state_key: Journey state name (IDEATION_BIG_IDEA, IDEATION_EQ, ...)
        title: Heading shown while the step is active
        description: One-sentence framing of the step
        objective: What a good answer accomplishes
        tips: Short coaching tips
        example: A model answer shown in help
        list_valued: Answer is a list; a capture replaces the whole list
        skippable: The step accepts an explicit ``skip`` action
        expects_question: The answer itself is a question (questions are submissions)
    """

    id: StepId
    stage: Stage
    ordinal: int
    label: str
    state_key: str
    title: str
    description: str
    objective: str
    tips: Tuple[str, ...]
    example: str
    list_valued: bool = False
    skippable: bool = False
    expects_question: bool = False


STAGE_ORDER: Tuple[Stage, ...] = (Stage.IDEATION, Stage.JOURNEY, Stage.DELIVERABLES, Stage.COMPLETE)

_STEPS: Dict[Stage, Tuple[StepDescriptor, ...]] = {
    Stage.IDEATION: (
        StepDescriptor(
            id=StepId.BIG_IDEA,
            stage=Stage.IDEATION,
            ordinal=0,
            label="Big Idea",
            state_key="IDEATION_BIG_IDEA",
            title="Anchor with a Big Idea",
            description="Let's start with a powerful concept that will guide the entire learning journey.",
            objective="Anchor the learning around one resonant concept.",
            tips=(
                "Think about enduring understandings",
                "Consider themes that spark curiosity",
                "Look for ideas that connect to real life",
            ),
            example="Technology as a force for change",
        ),
        StepDescriptor(
            id=StepId.ESSENTIAL_QUESTION,
            stage=Stage.IDEATION,
            ordinal=1,
            label="Essential Question",
            state_key="IDEATION_EQ",
            title="Frame the Essential Question",
            description="Craft a question that drives inquiry and invites multiple perspectives.",
            objective="Frame an inquiry that endures and drives research.",
            tips=(
                "Make it open-ended and thought-provoking",
                "Connect to real-world relevance",
                "Ensure it requires deep exploration",
            ),
            example="How might we use technology to make our community more sustainable?",
            expects_question=True,
        ),
        StepDescriptor(
            id=StepId.CHALLENGE,
            stage=Stage.IDEATION,
            ordinal=2,
            label="Challenge",
            state_key="IDEATION_CHALLENGE",
            title="Define the Authentic Challenge",
            description="Create a meaningful task that showcases student learning.",
            objective="Define an authentic task with a real audience.",
            tips=(
                "Connect to real audiences or purposes",
                "Allow for creative solutions",
                "Make it worthy of students' time",
            ),
            example="Design a digital campaign that helps local businesses reduce waste",
        ),
    ),
    Stage.JOURNEY: (
        StepDescriptor(
            id=StepId.PHASES,
            stage=Stage.JOURNEY,
            ordinal=0,
            label="Learning Phases",
            state_key="JOURNEY_PHASES",
            title="Design Your Learning Arc",
            description="Create 3-4 phases that guide students from curiosity to mastery.",
            objective="Map sign-posts that structure the learning arc.",
            tips=(
                "Start with exploration and wonder",
                "Build toward creation and application",
                "End with reflection and celebration",
            ),
            example="Investigate, Ideate, Prototype, Share",
            list_valued=True,
        ),
        StepDescriptor(
            id=StepId.ACTIVITIES,
            stage=Stage.JOURNEY,
            ordinal=1,
            label="Activities",
            state_key="JOURNEY_ACTIVITIES",
            title="Craft Engaging Activities",
            description="Design hands-on experiences that bring each phase to life.",
            objective="Define signature learning experiences per phase.",
            tips=(
                "Mix individual and collaborative work",
                "Include choice and student voice",
                "Connect to real-world applications",
            ),
            example="Community walk audit; interview a local business owner; build a prototype",
            list_valued=True,
        ),
        StepDescriptor(
            id=StepId.RESOURCES,
            stage=Stage.JOURNEY,
            ordinal=2,
            label="Resources",
            state_key="JOURNEY_RESOURCES",
            title="Gather Inspiring Resources",
            description="Collect materials, tools, and connections to enrich the journey.",
            objective="List experts, texts, and tools that sustain the work.",
            tips=(
                "Think beyond traditional materials",
                "Consider community experts",
                "Include diverse perspectives",
            ),
            example="City sustainability office; recycling data portal; maker space",
            list_valued=True,
            skippable=True,
        ),
    ),
    Stage.DELIVERABLES: (
        StepDescriptor(
            id=StepId.MILESTONES,
            stage=Stage.DELIVERABLES,
            ordinal=0,
            label="Milestones",
            state_key="DELIVER_MILESTONES",
            title="Define Milestone Checkpoints",
            description="Outline key moments that keep learners and stakeholders aligned.",
            objective="Checkpoints and evidence of progress.",
            tips=(
                "Think of milestones as celebration points",
                "Include both process and product",
                "Make them visible to all",
            ),
            example="Research brief; prototype showcase; final presentation",
            list_valued=True,
        ),
        StepDescriptor(
            id=StepId.RUBRIC,
            stage=Stage.DELIVERABLES,
            ordinal=1,
            label="Rubric",
            state_key="DELIVER_RUBRIC",
            title="Create Assessment Criteria",
            description="Draft clear criteria that reward inquiry, collaboration, craft, and reflection.",
            objective="Assessment criteria rewarding inquiry and craft.",
            tips=(
                "Focus on growth, not perfection",
                "Include self-assessment opportunities",
                "Make criteria student-friendly",
            ),
            example="Inquiry depth; collaboration; quality of craft; reflection",
            list_valued=True,
        ),
        StepDescriptor(
            id=StepId.IMPACT,
            stage=Stage.DELIVERABLES,
            ordinal=2,
            label="Impact Plan",
            state_key="DELIVER_IMPACT",
            title="Connect to Authentic Audiences",
            description="Specify how student work connects to authentic audiences or community needs.",
            objective="Real-world sharing and reflection mechanism.",
            tips=(
                "Think beyond classroom walls",
                "Consider local and global connections",
                "Plan for meaningful feedback",
            ),
            example="Students present their campaigns to the city council and local business owners",
        ),
    ),
    Stage.COMPLETE: (),
}

_STEP_INDEX: Dict[StepId, StepDescriptor] = {
    step.id: step for steps in _STEPS.values() for step in steps
}

# Shown in the stage welcome (initiator) and review (clarifier) sub-phases
STAGE_METADATA: Dict[Stage, Dict[str, object]] = {
    Stage.IDEATION: {
        "title": "Welcome to Ideation",
        "purpose": "Transform your teaching context into a Big Idea, Essential Question, and Challenge that motivate the unit.",
        "tips": (
            "Think about what truly matters in your subject",
            "Consider themes that connect to students' lives",
            "Let your creativity flow - we'll refine together",
        ),
        "review_title": "Ideation Summary",
        "review_tips": (
            "Check that all elements align",
            "Ensure the challenge excites you",
            "Make any refinements before moving on",
        ),
    },
    Stage.JOURNEY: {
        "title": "Welcome to Learning Journey",
        "purpose": "Plan phases, activities, and resources ensuring depth and skills progression.",
        "tips": (
            "Think about the learning arc",
            "Consider pacing and engagement",
            "Plan for student voice and choice",
        ),
        "review_title": "Journey Summary",
        "review_tips": (
            "Check the flow between phases",
            "Ensure activities build on each other",
            "Verify resources support your goals",
        ),
    },
    Stage.DELIVERABLES: {
        "title": "Welcome to Deliverables",
        "purpose": "Set milestones, rubric, and impact plan, clarifying output quality and authenticity.",
        "tips": (
            "Focus on growth and progress",
            "Make assessment transparent",
            "Connect to real audiences",
        ),
        "review_title": "Deliverables Summary",
        "review_tips": (
            "Ensure authentic assessment",
            "Check for real-world connections",
            "Celebrate the complete design",
        ),
    },
    Stage.COMPLETE: {
        "title": "Blueprint Complete!",
        "purpose": "Your learning experience is ready to launch.",
        "tips": (
            "Export your blueprint",
            "Share with colleagues",
        ),
        "review_title": "Blueprint Complete!",
        "review_tips": (),
    },
}


def _coerce_stage(stage) -> Stage:
    try:
        return Stage(stage)
    except ValueError:
        raise StageGraphError(f"Unknown stage: {stage!r}") from None


def steps_for(stage) -> Tuple[StepDescriptor, ...]:
    """Ordered steps of a stage. ``COMPLETE`` has none."""
    return _STEPS[_coerce_stage(stage)]


def next_stage(stage) -> Stage:
    """Stage that follows ``stage``; ``COMPLETE`` after the last working stage.

    Raises:
        StageGraphError: for ``COMPLETE`` (nothing follows the terminal stage)
    """
    current = _coerce_stage(stage)
    if current is Stage.COMPLETE:
        raise StageGraphError("COMPLETE is terminal and has no next stage")
    return STAGE_ORDER[STAGE_ORDER.index(current) + 1]


def step_at(stage, index: int) -> StepDescriptor:
    """Step descriptor at ``index`` within ``stage``.

    Raises:
        StageGraphError: index outside the stage's step list
    """
    steps = steps_for(stage)
    if not isinstance(index, int) or index < 0 or index >= len(steps):
        raise StageGraphError(f"Step index {index!r} out of range for {_coerce_stage(stage).value}")
    return steps[index]


def get_step(step_id) -> StepDescriptor:
    try:
        return _STEP_INDEX[StepId(step_id)]
    except ValueError:
        raise StageGraphError(f"Unknown step: {step_id!r}") from None


def all_steps() -> Tuple[StepDescriptor, ...]:
    return tuple(step for stage in STAGE_ORDER for step in _STEPS[stage])


def working_stages() -> Tuple[Stage, ...]:
    return tuple(stage for stage in STAGE_ORDER if stage is not Stage.COMPLETE)


def stage_context(stage, index: Optional[int] = None, review: bool = False) -> Dict[str, object]:
    """Title, description and tips for what the user is looking at.

    Args:
        stage: Current stage
        index: Step index; None means the stage welcome
        review: True for the stage's review (clarifier) sub-phase

    Returns:
        Dict with title, description, tips
    """
    current = _coerce_stage(stage)
    meta = STAGE_METADATA[current]
    if review:
        return {
            "title": meta["review_title"],
            "description": f"Let's review what we've created together in the {current.value.lower()} stage.",
            "tips": list(meta["review_tips"]),
        }
    if index is None or current is Stage.COMPLETE:
        return {"title": meta["title"], "description": meta["purpose"], "tips": list(meta["tips"])}
    step = step_at(current, index)
    return {"title": step.title, "description": step.description, "tips": list(step.tips)}


def assert_covers_all_steps(table: Mapping, table_name: str) -> None:
    """Fail fast when a per-step dispatch table misses a StepId."""
    missing = [step.value for step in StepId if step not in table]
    if missing:
        raise StageGraphError(f"{table_name} has no entry for: {', '.join(missing)}")
