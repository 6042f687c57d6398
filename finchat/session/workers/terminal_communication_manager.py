"""Terminal communication manager for interactive CLI I/O.

This component is the presentation adapter of the chat session:
- Subscribes to SessionState and prints turns and status changes as they happen
- Reads user input in a background thread
- Forwards intents (user messages, reset) onto the event loop that owns the session
"""

from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

from finchat.session.types import Event, EventType, Role, SessionSnapshot, SessionStatus
from finchat.session.utils.logging import get_logger

if TYPE_CHECKING:
    from finchat.session.controller import SessionController
    from finchat.session.state import SessionState


logger = get_logger("finchat")

SUGGESTED_QUESTIONS = (
    "Which sectors should I invest in right now?",
    "How should I split funds between trading and investing?",
    "What allocation suits a moderate risk profile?",
    "How do I manage risk in my portfolio?",
)

TOPIC_CARDS = (
    ("Growth Sectors", "Tech, Renewables, Digital Infra"),
    ("Defensive Sectors", "FMCG, Healthcare, Utilities"),
    ("Moderate Allocation", "40-60% Equity / 40-60% Debt"),
)

QUICK_PROMPTS = SUGGESTED_QUESTIONS + tuple(f"Tell me about {label}" for label, _ in TOPIC_CARDS)

RESET_COMMANDS = {"/reset", "/clear"}
EXIT_COMMANDS = {"exit", "quit"}
THINKING_MESSAGE = "Thinking..."


class CommunicationManager(ABC):
    """Abstract communication surface for channels that render a session."""

    @abstractmethod
    def emit_text(self, text: str) -> None:
        """Emit a complete line of text to the user."""
        raise NotImplementedError

    @abstractmethod
    def emit_status(self, text: str) -> None:
        """Emit a non-final status/progress message to the user."""
        raise NotImplementedError

    @abstractmethod
    def render(self, snapshot: SessionSnapshot) -> None:
        """Render the session after a mutation."""
        raise NotImplementedError

    @abstractmethod
    def start(
        self,
        controller: SessionController,
        loop: asyncio.AbstractEventLoop,
        stop_event: threading.Event,
    ) -> None:
        """Start inbound input processing for this communication channel."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Stop inbound input processing and release resources."""
        raise NotImplementedError


class TerminalCommunicationManager(CommunicationManager):
    """Terminal communication implementation used by the CLI runtime."""

    def __init__(self) -> None:
        self._console_lock = threading.Lock()
        self._input_active = False
        self._input_prompt = "> "

        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None
        self._controller: SessionController | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe: Callable[[], None] | None = None

        self._rendered_turns = 0
        self._rendered_generation = 0
        self._rendered_status = SessionStatus.IDLE

    def attach(self, state: SessionState) -> None:
        """Subscribe to a session and render from its current snapshot onward."""
        self.detach()
        snapshot = state.snapshot()
        self._rendered_turns = len(snapshot.transcript)
        self._rendered_generation = snapshot.generation
        self._rendered_status = snapshot.status
        self._unsubscribe = state.subscribe(self.render)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def start(
        self,
        controller: SessionController,
        loop: asyncio.AbstractEventLoop,
        stop_event: threading.Event,
    ) -> None:
        if self._thread and self._thread.is_alive():
            return

        self._controller = controller
        self._loop = loop
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._run_input_loop,
            daemon=True,
            name="terminal-communication",
        )
        self._thread.start()
        logger.debug("Terminal communication manager started")

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        self.detach()
        if self._thread:
            self._thread.join(timeout=0.5)

    def emit_text(self, text: str) -> None:
        if not text:
            return
        self._emit_line(text)

    def emit_status(self, text: str) -> None:
        if not text:
            return
        self._emit_line(text)

    def show_welcome(self) -> None:
        """Print the quick prompts offered while the conversation is empty."""
        lines = ["Ask me anything, or pick a quick prompt:"]
        for index, prompt in enumerate(SUGGESTED_QUESTIONS, start=1):
            lines.append(f"  /{index}  {prompt}")
        offset = len(SUGGESTED_QUESTIONS)
        for index, (label, description) in enumerate(TOPIC_CARDS, start=offset + 1):
            lines.append(f"  /{index}  {label} ({description})")
        lines.append("Commands: /reset clears the chat, /help shows this list, 'exit' quits.")
        self._emit_line("\n".join(lines))

    def render(self, snapshot: SessionSnapshot) -> None:
        if snapshot.generation != self._rendered_generation:
            self._rendered_generation = snapshot.generation
            self._rendered_turns = 0
            self._rendered_status = snapshot.status
            self.emit_status("Chat cleared.")
            self.show_welcome()

        for turn in snapshot.transcript[self._rendered_turns:]:
            speaker = "You" if turn.role == Role.USER else "Advisor"
            self.emit_text(f"{speaker}: {turn.content}")
        self._rendered_turns = len(snapshot.transcript)

        if snapshot.status != self._rendered_status:
            self._rendered_status = snapshot.status
            if snapshot.status == SessionStatus.PENDING:
                self.emit_status(THINKING_MESSAGE)

    def _run_input_loop(self) -> None:
        while self._stop_event is not None and not self._stop_event.is_set():
            try:
                raw = self._read_input(self._input_prompt)
            except (EOFError, StopIteration):
                if self._stop_event is not None:
                    self._stop_event.set()
                break
            except Exception:
                logger.exception("Terminal communication failed while reading user input")
                if self._stop_event is not None:
                    self._stop_event.set()
                break

            user_input = raw.strip()
            if not user_input:
                continue

            if user_input.lower() in EXIT_COMMANDS:
                logger.info("User requested exit")
                if self._stop_event is not None:
                    self._stop_event.set()
                break

            self._handle_user_input(user_input)

    def _handle_user_input(self, user_input: str) -> None:
        command = user_input.lower()
        if command in RESET_COMMANDS:
            self._post(Event(event_type=EventType.RESET))
            return
        if command == "/help":
            self.show_welcome()
            return
        if command.startswith("/") and command[1:].isdigit():
            index = int(command[1:])
            if not 1 <= index <= len(QUICK_PROMPTS):
                self.emit_text(f"No quick prompt /{index}. Type /help to list them.")
                return
            self._post(Event(event_type=EventType.USER_MESSAGE, payload=QUICK_PROMPTS[index - 1]))
            return

        self._post(Event(event_type=EventType.USER_MESSAGE, payload=user_input))

    def _post(self, event: Event) -> None:
        """Hand an intent to the controller on the loop thread."""
        if self._controller is None or self._loop is None:
            return
        if self._loop.is_closed():
            logger.debug(f"Event loop closed; dropping {event.event_type.value} intent")
            return
        try:
            self._loop.call_soon_threadsafe(self._controller.dispatch, event)
        except RuntimeError:
            logger.debug(f"Event loop closed while posting; dropping {event.event_type.value} intent")

    def _read_input(self, prompt: str) -> str:
        with self._console_lock:
            self._input_active = True
            self._input_prompt = prompt

        try:
            return input(prompt)
        finally:
            with self._console_lock:
                self._input_active = False

    def _emit_line(self, text: str) -> None:
        with self._console_lock:
            if self._input_active:
                print()
            print(text)
            self._render_prompt_if_active()

    def _render_prompt_if_active(self) -> None:
        if self._input_active:
            print(self._input_prompt, end="", flush=True)


terminal_communication_manager = TerminalCommunicationManager()
