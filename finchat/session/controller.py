"""Session controller: the only writer of SessionState.

The controller accepts two intents, submit and reset, and sequences the session
state and the completion client around a single await point. At most one
completion is outstanding for the live conversation: a submit made while the
session is pending is dropped. A reset does not cancel an outstanding call;
its result is discarded when it arrives because the session generation has
moved on.

Example usage:
    state = SessionState()
    controller = SessionController(state=state, client=client, directive=directive)

    task = controller.submit("How should I split funds?")
    await task
"""

from __future__ import annotations

import asyncio

from finchat.session.clients import CompletionClient, CompletionUnreachableError
from finchat.session.state import SessionState
from finchat.session.types import Event, EventType, Role, SessionStatus, Turn
from finchat.session.utils.logging import get_logger


logger = get_logger("finchat")

CONNECTION_ERROR_MESSAGE = "Connection error. Check your API key and try again."


class SessionController:
    """Mediates user intents against the session state and the completion client."""

    def __init__(self, state: SessionState, client: CompletionClient, directive: str) -> None:
        """Initialize the controller.

        Args:
            state: The session state this controller owns writes to.
            client: Backend used for every completion.
            directive: System directive prepended to every request.
        """
        self.state = state
        self.client = client
        self.directive = directive
        self._in_flight: set[asyncio.Task[None]] = set()

    def dispatch(self, event: Event) -> asyncio.Task[None] | None:
        """Route an adapter intent to submit() or reset()."""
        if event.event_type == EventType.USER_MESSAGE:
            return self.submit("" if event.payload is None else str(event.payload))
        if event.event_type == EventType.RESET:
            self.reset()
            return None
        logger.debug(f"Controller ignoring event type: {event.event_type}")
        return None

    def submit(self, raw_text: str) -> asyncio.Task[None] | None:
        """Accept a user message and start its completion.

        Must be called from the thread running the event loop. Empty input and input
        arriving while a request is pending are dropped without any state change.

        Returns:
            The task resolving the request, or None when the submission was dropped.
        """
        text = raw_text.strip()
        if not text:
            logger.debug("Dropping empty submission")
            return None
        if self.state.status == SessionStatus.PENDING:
            logger.debug("Dropping submission while a request is pending")
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("Submission made outside the event loop; dropping it")
            return None

        self.state.append_turn(Turn(role=Role.USER, content=text))
        self.state.set_status(SessionStatus.PENDING)

        generation = self.state.generation
        transcript = self.state.transcript
        task = loop.create_task(
            self._complete(transcript, generation),
            name="finchat-completion",
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    def reset(self) -> None:
        """Clear the conversation. Permitted in any status."""
        if self._in_flight:
            logger.debug(f"Reset with {len(self._in_flight)} request(s) in flight; results will be discarded")
        self.state.clear()
        logger.info("Conversation reset")

    async def drain(self) -> None:
        """Wait until every outstanding completion task has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def shutdown(self) -> None:
        """Abandon outstanding completions and close the client. Used on process exit."""
        for task in list(self._in_flight):
            task.cancel()
        await self.drain()
        await self.client.aclose()

    @property
    def in_flight(self) -> int:
        """Number of completion tasks still running, stale ones included."""
        return len(self._in_flight)

    async def _complete(self, transcript: tuple[Turn, ...], generation: int) -> None:
        try:
            try:
                reply = await self.client.complete(self.directive, transcript)
            except CompletionUnreachableError as exc:
                logger.warning(f"Completion service unreachable ({exc.reason}): {exc.detail}")
                reply = CONNECTION_ERROR_MESSAGE
            except Exception:
                logger.exception("Completion failed unexpectedly")
                reply = CONNECTION_ERROR_MESSAGE

            if self._is_stale(generation):
                logger.debug("Discarding completion for a conversation that was reset")
                return
            self.state.append_turn(Turn(role=Role.ASSISTANT, content=reply))
        finally:
            if not self._is_stale(generation):
                self.state.set_status(SessionStatus.IDLE)

    def _is_stale(self, generation: int) -> bool:
        return self.state.generation != generation
