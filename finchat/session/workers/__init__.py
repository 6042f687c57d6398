"""Presentation adapters for FinChat."""

from finchat.session.workers.terminal_communication_manager import TerminalCommunicationManager

__all__ = ["TerminalCommunicationManager"]
