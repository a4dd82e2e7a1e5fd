#!/usr/bin/env python3
"""
Chat with the Blueprint Coach - Interactive Terminal Interface

Walks through Ideation, Journey and Deliverables in the terminal, using the
same session loop as the API.

Usage:
    python3 chat_with_coach.py

Commands:
    /quit or /exit - Exit the chat
    /clear - Start a new blueprint
    /debug - Toggle debug mode (show outcome, phase, intent)
    /continue, /refine, /ideas, /whatif, /help, /skip - Press a button
    /edit <Step> - Edit a step from the stage review (e.g. /edit BigIdea)
    /card <n> - Pick suggestion card n from the last reply
    /state - Show progress
"""

import asyncio
import sys
import uuid
from typing import Any, Dict, List

from dotenv import load_dotenv

load_dotenv()

from blueprint_coach.errors import MalformedEventError
from blueprint_coach.flows.session import CoachSession, create_session
from blueprint_coach.state.conversation_state import Phase, calculate_progress

BUTTON_COMMANDS = {
    "/start": "start",
    "/continue": "confirm",
    "/confirm": "confirm",
    "/refine": "refine",
    "/ideas": "ideas",
    "/whatif": "whatif",
    "/help": "help",
    "/skip": "skip",
}


# Colors for terminal output
class Colors:
    BLUE = '\033[94m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'
    CYAN = '\033[96m'
    MAGENTA = '\033[95m'


def print_coach(message: str):
    """Print the coach's message in blue"""
    print(f"\n{Colors.BLUE}{Colors.BOLD}Coach:{Colors.END} {message}\n")


def print_debug(message: str):
    print(f"{Colors.YELLOW}[DEBUG] {message}{Colors.END}")


def print_system(message: str):
    print(f"{Colors.CYAN}{message}{Colors.END}")


def print_separator():
    print(f"{Colors.MAGENTA}{'=' * 80}{Colors.END}")


def print_affordances(affordances: List[Dict[str, Any]]):
    """Show buttons and numbered cards under the reply"""
    for affordance in affordances:
        if affordance.get("kind") == "cards":
            for number, card in enumerate(affordance.get("items", []), start=1):
                print(f"  {Colors.BOLD}[{number}]{Colors.END} {card['text']}")
        elif affordance.get("kind") == "buttons":
            labels = [f"{item['label']} ({item['action']})" for item in affordance.get("items", [])]
            print_system("  Buttons: " + " | ".join(labels))


def to_event(user_input: str, last_cards: List[Dict[str, Any]]) -> Dict[str, Any]:
    lowered = user_input.lower()
    if lowered in BUTTON_COMMANDS:
        return {"type": "button", "payload": BUTTON_COMMANDS[lowered]}
    if lowered.startswith("/edit "):
        return {"type": "button", "payload": f"edit:{user_input.split(maxsplit=1)[1].strip()}"}
    if lowered.startswith("/card "):
        index = int(user_input.split(maxsplit=1)[1]) - 1
        card = last_cards[index]
        return {"type": "card", "payload": {"text": card["text"], "source": card["source"]}}
    return {"type": "text", "payload": user_input}


def new_session() -> CoachSession:
    return create_session(f"terminal-{uuid.uuid4().hex[:8]}")


async def chat():
    print_separator()
    print(f"{Colors.BOLD}{Colors.CYAN}PBL BLUEPRINT COACH{Colors.END}")
    print_separator()

    session = new_session()
    await session.load_or_create()
    debug_mode = False
    last_cards: List[Dict[str, Any]] = []

    print_system("Commands: /quit | /clear | /debug | /start | /continue | /ideas | /card <n> | /state\n")
    welcome = await session.handle({"type": "button", "payload": "help"})
    print_coach(welcome.reply_text)
    print_affordances(welcome.ui_affordances)

    while True:
        try:
            user_input = input(f"{Colors.GREEN}You: {Colors.END}").strip()

            if user_input.lower() in ['/quit', '/exit']:
                print_system("\nGoodbye! Your blueprint has been saved.")
                break

            if user_input.lower() == '/clear':
                await session.close()
                session = new_session()
                await session.load_or_create()
                last_cards = []
                print_system("\nStarted a new blueprint.\n")
                continue

            if user_input.lower() == '/debug':
                debug_mode = not debug_mode
                print_system(f"\nDebug mode: {'ON' if debug_mode else 'OFF'}\n")
                continue

            if user_input.lower() == '/state':
                progress = calculate_progress(session.state)
                print_system(
                    f"\n{session.state['stage']} / {session.state['phase']} - "
                    f"{progress['completed']}/{progress['total']} steps ({progress['percentage']}%)\n"
                )
                continue

            try:
                event = to_event(user_input, last_cards)
            except (IndexError, ValueError):
                print_system("No such card. Use /ideas or /whatif first.")
                continue

            try:
                result = await session.handle(event)
            except MalformedEventError as e:
                print(f"{Colors.RED}{e}{Colors.END}")
                continue

            if debug_mode:
                intent = (result.new_state.get("lastIntent") or {})
                print_debug(f"Outcome: {result.outcome} | committed: {result.committed}")
                print_debug(f"Stage: {result.new_state['stage']} | Phase: {result.new_state['phase']}")
                print_debug(f"Intent: {intent.get('intent', 'N/A')} ({intent.get('confidence', 'N/A')})")

            print_coach(result.reply_text)
            print_affordances(result.ui_affordances)
            for affordance in result.ui_affordances:
                if affordance.get("kind") == "cards":
                    last_cards = affordance.get("items", [])

            if result.new_state.get("phase") == Phase.COMPLETE.value:
                print_system("Blueprint complete. Type /clear to start another or /quit to exit.")

        except KeyboardInterrupt:
            print_system("\n\nInterrupted. Goodbye!")
            break
        except EOFError:
            print_system("\n\nEOF received. Goodbye!")
            break

    await session.close()


def main():
    try:
        asyncio.run(chat())
    except Exception as e:
        print(f"{Colors.RED}Unexpected error: {e}{Colors.END}")
        sys.exit(1)


if __name__ == "__main__":
    main()
