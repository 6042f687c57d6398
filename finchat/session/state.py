"""Owned session state: the transcript, the status flag and their observers.

SessionState is the only mutable object shared between the controller and the
presentation adapter. The controller is its only writer; any number of
listeners may subscribe to snapshots. Listeners are notified synchronously
after every mutation, so observers see changes in the order they happen.
"""

from __future__ import annotations

from typing import Callable

from finchat.session.types import Role, SessionSnapshot, SessionStatus, Turn
from finchat.session.utils.logging import get_logger


logger = get_logger("finchat")

Listener = Callable[[SessionSnapshot], None]


class SessionState:
    """Append-only transcript plus the idle/pending gate."""

    def __init__(self) -> None:
        self._turns: list[Turn] = []
        self._status = SessionStatus.IDLE
        self._generation = 0
        self._listeners: list[Listener] = []

    @property
    def transcript(self) -> tuple[Turn, ...]:
        """Read-only view of the turns in creation order."""
        return tuple(self._turns)

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def generation(self) -> int:
        """Counter bumped by every clear(); used to recognise stale completions."""
        return self._generation

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            transcript=self.transcript,
            status=self._status,
            generation=self._generation,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def append_turn(self, turn: Turn) -> None:
        """Append a turn to the end of the transcript.

        Raises:
            ValueError: If a user turn has empty content. Empty submissions must be
                rejected before they reach the state.
        """
        if turn.role == Role.USER and not turn.content.strip():
            raise ValueError("User turns must have non-empty content")
        self._turns.append(turn)
        logger.debug(f"Appended {turn.role.value} turn (transcript size={len(self._turns)})")
        self._notify()

    def set_status(self, status: SessionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        logger.debug(f"Session status: {status.value}")
        self._notify()

    def clear(self) -> None:
        """Empty the transcript and return to idle in one step."""
        self._turns = []
        self._status = SessionStatus.IDLE
        self._generation += 1
        logger.debug(f"Session cleared (generation={self._generation})")
        self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener failed while handling a snapshot")
