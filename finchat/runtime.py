"""Runtime helpers: the session event loop and process-level shutdown handling."""

from __future__ import annotations

import asyncio
import logging
import signal
import threading

from finchat.session.clients import build_completion_client
from finchat.session.config import Settings
from finchat.session.context import load_directive
from finchat.session.controller import SessionController
from finchat.session.state import SessionState
from finchat.session.utils.helpers import get_system_instructions_path
from finchat.session.workers.terminal_communication_manager import TerminalCommunicationManager

logger = logging.getLogger("finchat")

POLL_INTERVAL_SECONDS = 0.05


async def run_session(
    settings: Settings,
    manager: TerminalCommunicationManager,
    stop_event: threading.Event,
) -> None:
    """Own one chat session on the running loop until stop_event is set."""
    directive = load_directive(get_system_instructions_path())
    state = SessionState()
    controller = SessionController(
        state=state,
        client=build_completion_client(settings.llm),
        directive=directive,
    )

    manager.attach(state)
    manager.start(controller=controller, loop=asyncio.get_running_loop(), stop_event=stop_event)
    logger.info("FinChat session started")

    try:
        while not stop_event.is_set():
            await asyncio.sleep(POLL_INTERVAL_SECONDS)
    finally:
        manager.stop()
        await controller.shutdown()


def install_signal_handlers(stop_event: threading.Event) -> dict[int, signal.Handlers]:
    """Install SIGINT/SIGTERM handlers that request graceful shutdown.

    Returns previous handlers so callers can restore them after exit.
    """
    previous_handlers: dict[int, signal.Handlers] = {}

    def _on_signal(signum, _frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}; requesting shutdown")
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        previous_handlers[signum] = signal.getsignal(signum)
        signal.signal(signum, _on_signal)

    return previous_handlers


def restore_signal_handlers(previous_handlers: dict[int, signal.Handlers]) -> None:
    """Restore previously installed signal handlers."""
    for signum, handler in previous_handlers.items():
        signal.signal(signum, handler)
