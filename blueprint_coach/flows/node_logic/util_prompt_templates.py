"""Assistant message templates, button affordances and fallback suggestion cards.

Every user-facing string the engine emits without a model call lives here so
the nodes stay free of prose. Fallback idea / what-if cards are keyed by
StepId and checked for coverage at import, so adding a step without its
templates fails fast.
"""

from typing import Any, Dict, Iterable, List, Optional

from blueprint_coach.state.stage_graph import (
    STAGE_METADATA,
    Stage,
    StepDescriptor,
    StepId,
    assert_covers_all_steps,
    stage_context,
    steps_for,
    working_stages,
)

# ============================================================================
# Affordances
# ============================================================================

BUTTON_LABELS = {
    "start": "Let's Begin",
    "confirm": "Continue",
    "refine": "Refine",
    "ideas": "Ideas",
    "whatif": "What-If",
    "help": "Help",
    "skip": "Skip",
    "retry": "Try Again",
}


def buttons(*actions: str) -> Dict[str, Any]:
    """Buttons affordance. ``"retry"`` renders a confirm action labelled for a failed recap."""
    items = []
    for action in actions:
        if action == "retry":
            items.append({"action": "confirm", "label": BUTTON_LABELS["retry"]})
        else:
            items.append({"action": action, "label": BUTTON_LABELS[action]})
    return {"kind": "buttons", "items": items}


def edit_buttons(stage) -> Dict[str, Any]:
    items = [{"action": "confirm", "label": BUTTON_LABELS["confirm"]}]
    for step in steps_for(stage):
        items.append({"action": f"edit:{step.id.value}", "label": f"Edit {step.label}"})
    return {"kind": "buttons", "items": items}


def cards(texts: Iterable[str], source: str) -> Dict[str, Any]:
    return {"kind": "cards", "items": [{"text": text, "source": source} for text in texts]}


def input_buttons(step: StepDescriptor) -> Dict[str, Any]:
    actions = ["ideas", "whatif", "help"]
    if step.skippable:
        actions.append("skip")
    return buttons(*actions)


# ============================================================================
# Conversation messages
# ============================================================================

def _tips_block(tips: Iterable[str]) -> str:
    return "\n".join(f"• {tip}" for tip in tips)


def _wizard_line(wizard_context: Optional[Dict[str, Any]]) -> str:
    if not wizard_context:
        return ""
    parts = []
    if wizard_context.get("subject"):
        parts.append(str(wizard_context["subject"]))
    if wizard_context.get("gradeLevel"):
        parts.append(f"grade {wizard_context['gradeLevel']}")
    if wizard_context.get("duration"):
        parts.append(str(wizard_context["duration"]))
    if not parts:
        return ""
    return f"We're designing for {', '.join(parts)}.\n\n"


def welcome_message(stage, wizard_context: Optional[Dict[str, Any]] = None,
                    previous_recap: Optional[str] = None) -> str:
    context = stage_context(stage)
    carried = f"So far: {previous_recap}\n\n" if previous_recap else ""
    return (
        f"**{context['title']}**\n\n"
        f"{_wizard_line(wizard_context)}{carried}"
        f"{context['description']}\n\n"
        f"{_tips_block(context['tips'])}\n\n"
        "Ready when you are."
    )


def step_prompt(step: StepDescriptor) -> str:
    return (
        f"**{step.title}**\n\n"
        f"{step.description}\n\n"
        f"What's your {step.label}? For example: \"{step.example}\""
    )


def help_message(step: StepDescriptor) -> str:
    hint = ""
    if step.list_valued:
        hint = "\n\nList a few items separated by commas, semicolons, or new lines."
    if step.skippable:
        hint += "\n\nThis step is optional. Choose **Skip** to move on."
    return (
        f"**{step.label}**: {step.objective}\n\n"
        f"{_tips_block(step.tips)}\n\n"
        f"Example: \"{step.example}\"{hint}"
    )


def confirmation_message(step: StepDescriptor, processed_text: str, nudge: Optional[str] = None) -> str:
    message = (
        f"Current **{step.label}**: \"{processed_text}\". "
        "Click **Continue** to proceed or **Refine** to improve this answer."
    )
    if nudge:
        message = f"{message}\n\n{nudge}"
    return message


def committed_message(step: StepDescriptor, processed_text: str, next_step: Optional[StepDescriptor]) -> str:
    message = f"Great! Your {step.label} is locked in: \"{processed_text}\"."
    if next_step is not None:
        message = f"{message}\n\n{step_prompt(next_step)}"
    return message


def guidance_message(step: StepDescriptor, message: Optional[str], suggestions: List[str]) -> str:
    lines = [message or f"Let's strengthen your {step.label}."]
    if suggestions:
        lines.append("")
        lines.extend(f"• {suggestion}" for suggestion in suggestions)
    lines.append("")
    lines.append("Try rephrasing, or choose **Ideas** to see examples.")
    return "\n".join(lines)


def clarify_message(step: StepDescriptor, suggestions: List[str]) -> str:
    lines = [
        f"I want to make sure I capture this right. "
        f"Is that your {step.label}, or are you still thinking it through?"
    ]
    if suggestions:
        lines.append("")
        lines.extend(f"• {suggestion}" for suggestion in suggestions)
    lines.append("")
    lines.append(f"Share your {step.label} in one sentence, or ask for **Ideas**.")
    return "\n".join(lines)


def explore_message(step: StepDescriptor, text: str) -> str:
    snippet = text.strip()
    if len(snippet) > 80:
        snippet = snippet[:77].rstrip() + "..."
    return (
        f"I like where this is going: \"{snippet}\". "
        f"When you're ready, turn it into your {step.label}. {step.objective}\n\n"
        "Want some **Ideas** or a **What-If** to push the thinking further?"
    )


def review_message(stage, recap: str) -> str:
    context = stage_context(stage, review=True)
    return (
        f"**{context['title']}**\n\n"
        f"{recap}\n\n"
        f"{_tips_block(context['tips'])}\n\n"
        "Click **Continue** to move on, or edit any step first."
    )


def revision_hint() -> str:
    return "To change something, choose the step you want to edit below."


def advance_rejected_message(stage, missing_labels: List[str]) -> str:
    if not missing_labels:
        return (
            f"I couldn't put together the {Stage(stage).value.title()} summary just now. "
            "Choose **Try Again** to retry, or edit a step below."
        )
    missing = ", ".join(missing_labels)
    return (
        f"Before we leave {Stage(stage).value.title()}, I still need: {missing}. "
        "Choose **Try Again** once those are in place, or edit a step below."
    )


def stage_complete_message(stage, recap: str) -> str:
    return f"{Stage(stage).value.title()} complete! {recap}"


def complete_message(recaps: Dict[str, str]) -> str:
    lines = [f"**{STAGE_METADATA[Stage.COMPLETE]['title']}**", ""]
    for stage in working_stages():
        if recaps.get(stage.value):
            lines.append(f"• {stage.value.title()}: {recaps[stage.value]}")
    lines.append("")
    lines.append("Your blueprint is finished. Export it or share it with colleagues.")
    return "\n".join(lines)


def skip_message(step: StepDescriptor, next_step: Optional[StepDescriptor]) -> str:
    message = f"No problem, we'll skip {step.label} for now."
    if next_step is not None:
        message = f"{message}\n\n{step_prompt(next_step)}"
    return message


def generation_pending_message(kind: str, step: StepDescriptor) -> str:
    noun = "ideas" if kind == "ideas" else "what-if scenarios"
    return f"Let me pull together a few {noun} for your {step.label}..."


# ============================================================================
# Fallback suggestion cards (used when the model is unavailable)
# ============================================================================

FALLBACK_IDEAS: Dict[StepId, List[str]] = {
    StepId.BIG_IDEA: [
        "Technology as a force for change",
        "Community as a system of interdependence",
        "Identity shaped through story",
    ],
    StepId.ESSENTIAL_QUESTION: [
        "How might we use what we learn to improve our community?",
        "What makes a solution truly sustainable?",
        "How do our choices shape the world around us?",
    ],
    StepId.CHALLENGE: [
        "Design a campaign that informs our community about a local issue",
        "Build a prototype that solves a problem at our school",
        "Create a public exhibit that documents our findings",
    ],
    StepId.PHASES: [
        "Investigate, Ideate, Prototype, Share",
        "Wonder, Research, Create, Reflect",
        "Launch, Explore, Build, Present",
    ],
    StepId.ACTIVITIES: [
        "Community walk audit; expert interview; data collection sprint",
        "Design charrette; peer critique; prototype testing",
        "Field observation; research jigsaw; gallery walk",
    ],
    StepId.RESOURCES: [
        "Local experts and community partners",
        "Open data portals and primary sources",
        "Maker space tools and digital design software",
    ],
    StepId.MILESTONES: [
        "Research brief; prototype showcase; final presentation",
        "Proposal pitch; mid-point critique; public exhibition",
        "Question board; draft review; community launch",
    ],
    StepId.RUBRIC: [
        "Inquiry depth; collaboration; quality of craft; reflection",
        "Evidence use; creativity; communication; growth",
        "Research; design process; presentation; self-assessment",
    ],
    StepId.IMPACT: [
        "Present solutions to a panel of community stakeholders",
        "Publish findings for families and the local community",
        "Exhibit prototypes at a public showcase with expert feedback",
    ],
}

FALLBACK_WHATIFS: Dict[StepId, List[str]] = {
    StepId.BIG_IDEA: [
        "What if students saw this concept through the eyes of a local changemaker?",
        "What if the big idea connected two subjects at once?",
        "What if students had to defend the opposite view?",
    ],
    StepId.ESSENTIAL_QUESTION: [
        "What if the question had no single right answer?",
        "What if students rewrote the question after their first research sprint?",
        "What if the question centred a real community need?",
    ],
    StepId.CHALLENGE: [
        "What if a real client judged the final product?",
        "What if students chose their own medium for the solution?",
        "What if the challenge had a tight real-world budget?",
    ],
    StepId.PHASES: [
        "What if each phase ended with a public checkpoint?",
        "What if students designed the final phase themselves?",
        "What if the arc started with a provocation instead of research?",
    ],
    StepId.ACTIVITIES: [
        "What if every activity produced evidence for the final product?",
        "What if students rotated roles between activities?",
        "What if one activity happened outside school?",
    ],
    StepId.RESOURCES: [
        "What if a community expert co-taught one lesson?",
        "What if students curated the resource list?",
        "What if the resources included conflicting sources?",
    ],
    StepId.MILESTONES: [
        "What if families were invited to one milestone?",
        "What if students set their own checkpoint dates?",
        "What if each milestone had a peer review?",
    ],
    StepId.RUBRIC: [
        "What if students co-wrote one criterion?",
        "What if the rubric rewarded productive failure?",
        "What if experts scored one criterion?",
    ],
    StepId.IMPACT: [
        "What if the work lived on after the unit ended?",
        "What if the audience could act on the students' recommendations?",
        "What if students measured the impact a month later?",
    ],
}

assert_covers_all_steps(FALLBACK_IDEAS, "FALLBACK_IDEAS")
assert_covers_all_steps(FALLBACK_WHATIFS, "FALLBACK_WHATIFS")


def fallback_cards(kind: str, step: StepDescriptor) -> List[str]:
    table = FALLBACK_WHATIFS if kind == "whatif" else FALLBACK_IDEAS
    return list(table[step.id])


def fallback_text(kind: str, step: StepDescriptor) -> str:
    heading = "Here are a few what-if scenarios" if kind == "whatif" else "Here are a few ideas"
    items = fallback_cards(kind, step)
    lines = [f"{heading} for your {step.label}:", ""]
    lines.extend(f"{index}. {item}" for index, item in enumerate(items, start=1))
    lines.append("")
    lines.append("Pick one to use it, or share your own.")
    return "\n".join(lines)


# ============================================================================
# Generation prompts
# ============================================================================

SYSTEM_CONTEXT = (
    "You are an instructional design coach helping an educator design a project-based "
    "learning unit. Be concise, concrete and encouraging. When asked for suggestions, "
    "reply with exactly three numbered options, one line each, no preamble. "
    "If the educator's current stage is finished and they are ready to move on, append "
    "{readyForNext: true} on its own line."
)


def generation_prompt(kind: str, step: StepDescriptor, recaps: Dict[str, str],
                      wizard_context: Optional[Dict[str, Any]] = None,
                      draft: Optional[str] = None) -> Dict[str, str]:
    """Build the {system_context, stage_context, user_prompt} triple for the text service."""
    context_lines = [f"Stage: {step.stage.value.title()}", f"Step: {step.label} ({step.objective})"]
    for stage_value, recap in recaps.items():
        context_lines.append(f"{stage_value.title()} recap: {recap}")
    if wizard_context:
        for key in ("subject", "gradeLevel", "duration", "location"):
            if wizard_context.get(key):
                context_lines.append(f"{key}: {wizard_context[key]}")

    if kind == "whatif":
        ask = f"Offer three provocative what-if scenarios that could reshape the {step.label}."
    elif kind == "ideas":
        ask = f"Offer three strong {step.label} options. Example of the format: \"{step.example}\"."
    else:
        ask = f"Help the educator shape their {step.label}."
    if draft:
        ask = f"{ask} Build on their current draft: \"{draft}\"."

    return {
        "system_context": SYSTEM_CONTEXT,
        "stage_context": "\n".join(context_lines),
        "user_prompt": ask,
    }
