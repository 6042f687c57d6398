import asyncio
import json
import unittest

import httpx

from finchat.session.clients import (
    FALLBACK_REPLY,
    CompletionClient,
    CompletionUnreachableError,
    OpenAICompatibleClient,
)
from finchat.session.config import LLMSettings
from finchat.session.controller import CONNECTION_ERROR_MESSAGE, SessionController
from finchat.session.state import SessionState
from finchat.session.types import Event, EventType, Role, SessionStatus, Turn


def _llm_settings() -> LLMSettings:
    return LLMSettings(
        provider="openai",
        model="llama-3.3-70b-versatile",
        base_url="https://api.example.test/v1",
        api_key="secret",
        temperature=0.5,
        max_tokens=1024,
        request_timeout_seconds=5.0,
    )


class _EchoClient(CompletionClient):
    """Replies with the content of the last user turn."""

    def __init__(self):
        self.settings = _llm_settings()
        self.calls = []

    async def complete(self, directive, transcript):
        self.calls.append((directive, tuple(transcript)))
        return transcript[-1].content


class _ControlledClient(CompletionClient):
    """Each call waits on a future the test resolves."""

    def __init__(self):
        self.settings = _llm_settings()
        self.calls = []
        self.futures = []
        self.closed = False

    async def complete(self, directive, transcript):
        self.calls.append((directive, tuple(transcript)))
        future = asyncio.get_running_loop().create_future()
        self.futures.append(future)
        return await future

    async def aclose(self):
        self.closed = True


class _UnreachableClient(CompletionClient):
    def __init__(self):
        self.settings = _llm_settings()

    async def complete(self, directive, transcript):
        raise CompletionUnreachableError("transport", "connection refused")


class _ExplodingClient(CompletionClient):
    def __init__(self):
        self.settings = _llm_settings()

    async def complete(self, directive, transcript):
        raise RuntimeError("unexpected")


def _mock_http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSubmit(unittest.IsolatedAsyncioTestCase):
    def _controller(self, client):
        state = SessionState()
        return state, SessionController(state=state, client=client, directive="Be careful.")

    async def test_empty_and_whitespace_submissions_are_dropped(self):
        # Verifies blank input never touches transcript or status.
        client = _EchoClient()
        state, controller = self._controller(client)
        seen = []
        state.subscribe(seen.append)

        self.assertIsNone(controller.submit(""))
        self.assertIsNone(controller.submit("   "))
        self.assertIsNone(controller.submit("\n\t"))

        self.assertEqual(state.transcript, ())
        self.assertEqual(state.status, SessionStatus.IDLE)
        self.assertEqual(seen, [])
        self.assertEqual(client.calls, [])

    async def test_accepted_submit_appends_trimmed_user_then_assistant(self):
        # Verifies a resolved submit ends with user(trimmed) followed by assistant, idle.
        client = _EchoClient()
        state, controller = self._controller(client)

        task = controller.submit("  What allocation suits me?  ")
        await task

        self.assertEqual(
            state.transcript,
            (
                Turn(Role.USER, "What allocation suits me?"),
                Turn(Role.ASSISTANT, "What allocation suits me?"),
            ),
        )
        self.assertEqual(state.status, SessionStatus.IDLE)

    async def test_echo_round_trip_over_two_turns(self):
        # Verifies history accumulates across turns and the full transcript is resent.
        client = _EchoClient()
        state, controller = self._controller(client)

        await controller.submit("A")
        await controller.submit("B")

        self.assertEqual(
            state.transcript,
            (
                Turn(Role.USER, "A"),
                Turn(Role.ASSISTANT, "A"),
                Turn(Role.USER, "B"),
                Turn(Role.ASSISTANT, "B"),
            ),
        )
        self.assertEqual(client.calls[0], ("Be careful.", (Turn(Role.USER, "A"),)))
        self.assertEqual(
            client.calls[1][1],
            (Turn(Role.USER, "A"), Turn(Role.ASSISTANT, "A"), Turn(Role.USER, "B")),
        )

    async def test_user_turn_is_visible_before_the_call_resolves(self):
        # Verifies observers see the user's message and pending status immediately.
        client = _ControlledClient()
        state, controller = self._controller(client)
        seen = []
        state.subscribe(seen.append)

        task = controller.submit("hello")

        self.assertEqual(state.transcript, (Turn(Role.USER, "hello"),))
        self.assertEqual(state.status, SessionStatus.PENDING)
        self.assertEqual(seen[-1].status, SessionStatus.PENDING)

        await asyncio.sleep(0)
        client.futures[0].set_result("hi")
        await task

    async def test_submissions_while_pending_are_dropped(self):
        # Verifies only the first of several submits made while pending is accepted.
        client = _ControlledClient()
        state, controller = self._controller(client)

        first = controller.submit("A")
        self.assertIsNotNone(first)
        for text in ("B", "C", "   ", "D"):
            self.assertIsNone(controller.submit(text))
        await asyncio.sleep(0)

        self.assertEqual(state.transcript, (Turn(Role.USER, "A"),))
        self.assertEqual(state.status, SessionStatus.PENDING)
        self.assertEqual(len(client.calls), 1)

        client.futures[0].set_result("reply")
        await first

        self.assertEqual(
            state.transcript,
            (Turn(Role.USER, "A"), Turn(Role.ASSISTANT, "reply")),
        )
        self.assertEqual(state.status, SessionStatus.IDLE)

    async def test_unreachable_client_appends_connection_error(self):
        # Verifies transport failures become an in-chat apology and the session goes idle.
        state, controller = self._controller(_UnreachableClient())

        with self.assertLogs("finchat", level="WARNING"):
            await controller.submit("hello")

        self.assertEqual(
            state.transcript,
            (Turn(Role.USER, "hello"), Turn(Role.ASSISTANT, CONNECTION_ERROR_MESSAGE)),
        )
        self.assertEqual(state.status, SessionStatus.IDLE)

    async def test_unexpected_exception_still_releases_pending(self):
        # Verifies an unexpected client error neither escapes nor leaves the session pending.
        state, controller = self._controller(_ExplodingClient())

        with self.assertLogs("finchat", level="ERROR"):
            await controller.submit("hello")

        self.assertEqual(state.transcript[-1], Turn(Role.ASSISTANT, CONNECTION_ERROR_MESSAGE))
        self.assertEqual(state.status, SessionStatus.IDLE)
        self.assertIsNotNone(controller.submit("again"))
        await controller.drain()

    async def test_soft_failure_from_service_without_completions(self):
        # Verifies a reachable service with no choices yields the fallback reply.
        http = _mock_http_client(lambda request: httpx.Response(200, json={"choices": []}))
        client = OpenAICompatibleClient(_llm_settings(), http_client=http)
        state, controller = self._controller(client)

        with self.assertLogs("finchat", level="WARNING"):
            await controller.submit("hello")

        self.assertEqual(
            state.transcript,
            (Turn(Role.USER, "hello"), Turn(Role.ASSISTANT, FALLBACK_REPLY)),
        )
        self.assertEqual(state.status, SessionStatus.IDLE)
        await http.aclose()

    async def test_transport_failure_from_service(self):
        # Verifies a connection error from the HTTP layer yields the connection-error reply.
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        http = _mock_http_client(_refuse)
        client = OpenAICompatibleClient(_llm_settings(), http_client=http)
        state, controller = self._controller(client)

        with self.assertLogs("finchat", level="WARNING"):
            await controller.submit("hello")

        self.assertEqual(
            state.transcript,
            (
                Turn(Role.USER, "hello"),
                Turn(Role.ASSISTANT, "Connection error. Check your API key and try again."),
            ),
        )
        self.assertEqual(state.status, SessionStatus.IDLE)
        await http.aclose()

    async def test_request_carries_directive_and_history(self):
        # Verifies the outbound body leads with the directive and lists every turn in order.
        bodies = []

        def _reply(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"choices": [{"message": {"content": "noted"}}]})

        http = _mock_http_client(_reply)
        client = OpenAICompatibleClient(_llm_settings(), http_client=http)
        state, controller = self._controller(client)

        await controller.submit("first")
        await controller.submit("second")

        self.assertEqual(
            bodies[1]["messages"],
            [
                {"role": "system", "content": "Be careful."},
                {"role": "user", "content": "first"},
                {"role": "assistant", "content": "noted"},
                {"role": "user", "content": "second"},
            ],
        )
        await http.aclose()


class TestSubmitOutsideLoop(unittest.TestCase):
    def test_submit_without_running_loop_changes_nothing(self):
        # Verifies a submission made off the event loop is dropped before any state change.
        state = SessionState()
        controller = SessionController(state=state, client=_EchoClient(), directive="Be careful.")

        with self.assertLogs("finchat", level="ERROR"):
            task = controller.submit("hello")

        self.assertIsNone(task)
        self.assertEqual(state.transcript, ())
        self.assertEqual(state.status, SessionStatus.IDLE)
        self.assertEqual(controller.in_flight, 0)


class TestReset(unittest.IsolatedAsyncioTestCase):
    def _controller(self, client):
        state = SessionState()
        return state, SessionController(state=state, client=client, directive="d")

    async def test_reset_from_idle_clears_everything(self):
        # Verifies reset yields an empty, idle session.
        state, controller = self._controller(_EchoClient())
        await controller.submit("hello")

        controller.reset()

        self.assertEqual(state.transcript, ())
        self.assertEqual(state.status, SessionStatus.IDLE)

    async def test_reset_on_empty_session_is_harmless(self):
        # Verifies reset is permitted with nothing to clear.
        state, controller = self._controller(_EchoClient())
        controller.reset()
        controller.reset()
        self.assertEqual(state.transcript, ())
        self.assertEqual(state.status, SessionStatus.IDLE)

    async def test_stale_result_after_reset_is_discarded(self):
        # Verifies a response arriving after reset never reaches the new conversation.
        client = _ControlledClient()
        state, controller = self._controller(client)

        task = controller.submit("hello")
        await asyncio.sleep(0)
        controller.reset()

        self.assertEqual(state.transcript, ())
        self.assertEqual(state.status, SessionStatus.IDLE)

        client.futures[0].set_result("late answer")
        await task

        self.assertEqual(state.transcript, ())
        self.assertEqual(state.status, SessionStatus.IDLE)

    async def test_stale_failure_after_reset_is_discarded(self):
        # Verifies a late failure is discarded just like a late success.
        client = _ControlledClient()
        state, controller = self._controller(client)

        task = controller.submit("hello")
        await asyncio.sleep(0)
        controller.reset()
        client.futures[0].set_exception(CompletionUnreachableError("timeout"))
        with self.assertLogs("finchat", level="WARNING"):
            await task

        self.assertEqual(state.transcript, ())

    async def test_stale_result_does_not_release_newer_request(self):
        # Verifies a late response cannot flip a newer pending request back to idle.
        client = _ControlledClient()
        state, controller = self._controller(client)

        stale = controller.submit("old question")
        await asyncio.sleep(0)
        controller.reset()
        fresh = controller.submit("new question")
        await asyncio.sleep(0)

        client.futures[0].set_result("old answer")
        await stale

        self.assertEqual(state.transcript, (Turn(Role.USER, "new question"),))
        self.assertEqual(state.status, SessionStatus.PENDING)
        self.assertIsNone(controller.submit("dropped"))

        client.futures[1].set_result("new answer")
        await fresh

        self.assertEqual(
            state.transcript,
            (Turn(Role.USER, "new question"), Turn(Role.ASSISTANT, "new answer")),
        )
        self.assertEqual(state.status, SessionStatus.IDLE)


class TestDispatchAndLifecycle(unittest.IsolatedAsyncioTestCase):
    async def test_dispatch_routes_intents(self):
        # Verifies USER_MESSAGE submits and RESET clears.
        state = SessionState()
        controller = SessionController(state=state, client=_EchoClient(), directive="d")

        task = controller.dispatch(Event(EventType.USER_MESSAGE, "  hi "))
        await task
        self.assertEqual(state.transcript[0], Turn(Role.USER, "hi"))

        self.assertIsNone(controller.dispatch(Event(EventType.RESET)))
        self.assertEqual(state.transcript, ())

    async def test_dispatch_without_payload_is_dropped(self):
        # Verifies a USER_MESSAGE with no payload behaves like empty input.
        state = SessionState()
        controller = SessionController(state=state, client=_EchoClient(), directive="d")
        self.assertIsNone(controller.dispatch(Event(EventType.USER_MESSAGE)))
        self.assertEqual(state.transcript, ())

    async def test_drain_waits_for_in_flight_requests(self):
        # Verifies drain() returns only once outstanding completions have resolved.
        client = _ControlledClient()
        state = SessionState()
        controller = SessionController(state=state, client=client, directive="d")

        controller.submit("hello")
        await asyncio.sleep(0)
        self.assertEqual(controller.in_flight, 1)

        asyncio.get_running_loop().call_later(0.01, client.futures[0].set_result, "done")
        await controller.drain()

        self.assertEqual(controller.in_flight, 0)
        self.assertEqual(state.transcript[-1], Turn(Role.ASSISTANT, "done"))

    async def test_shutdown_cancels_requests_and_closes_client(self):
        # Verifies shutdown abandons a hung request, releases pending and closes the client.
        client = _ControlledClient()
        state = SessionState()
        controller = SessionController(state=state, client=client, directive="d")

        controller.submit("hello")
        await asyncio.sleep(0)
        await controller.shutdown()

        self.assertEqual(controller.in_flight, 0)
        self.assertEqual(state.status, SessionStatus.IDLE)
        self.assertEqual(state.transcript, (Turn(Role.USER, "hello"),))
        self.assertTrue(client.closed)


if __name__ == "__main__":
    unittest.main()
