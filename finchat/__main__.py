"""
Entry point for running FinChat:

    python -m finchat

Configuration is loaded from:
1. Environment variables (FINCHAT_* prefix)
2. config/local.toml (if it exists)
3. config/default.toml (default settings)

See .env.example for available environment variable overrides.
"""

from __future__ import annotations

import asyncio
import threading

from finchat.runtime import (
    install_signal_handlers as _install_signal_handlers,
    restore_signal_handlers as _restore_signal_handlers,
    run_session,
)
from finchat.session.config import load_settings
from finchat.session.utils.logging import configure_logging, get_logger
from finchat.session.workers.terminal_communication_manager import terminal_communication_manager


logger = get_logger("finchat")


def main() -> None:
    """Run the FinChat interactive session.

    Loads configuration, then runs the session on an asyncio loop while a background
    thread reads terminal input, until the user exits or a signal arrives.
    """
    stop_event = threading.Event()
    previous_signal_handlers = _install_signal_handlers(stop_event)

    try:
        try:
            settings = load_settings()
        except (RuntimeError, ValueError) as e:
            logger.error(f"Configuration error: {e}")
            terminal_communication_manager.emit_text(f"Configuration error: {e}")
            return

        configure_logging(debug=settings.session.debug)

        terminal_communication_manager.emit_text("FinAdvisor AI (type 'exit' to quit)")
        terminal_communication_manager.show_welcome()

        asyncio.run(run_session(settings, terminal_communication_manager, stop_event))
        logger.info("FinChat shutdown complete")
    finally:
        stop_event.set()
        _restore_signal_handlers(previous_signal_handlers)


if __name__ == "__main__":
    main()
