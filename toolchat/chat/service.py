"""
ChatService: handles one chat request end to end.

    ChatRequest ─► load/create Session ─► persist user Turn ─► session event
                                                   │
                          (background) title ◄─────┤
                                                   ▼
                                         TurnLoop.run(history)
                                                   ▼
                                     done / error (exactly one)

Requests for the same session run one at a time: the whole request holds
the store's per-session lock, so two browser tabs posting to one session
produce two complete, non-interleaved exchanges. Different sessions run
fully concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from toolchat.chat.models import ChatRequest
from toolchat.chat.prompts import TITLE_PROMPT, build_system_prompt, clean_title
from toolchat.config.logging import get_logger
from toolchat.config.settings import ChatSettings, LLMSettings
from toolchat.conversation.models import Session, Turn
from toolchat.conversation.store import ConversationStore, SessionNotFoundError
from toolchat.events import DoneEvent, ErrorEvent, EventSink, SessionEvent
from toolchat.llm.models import LoopState, TurnResult
from toolchat.llm.orchestrator import TurnLoop
from toolchat.llm.provider import Provider
from toolchat.tools.base import Tool, ToolContext
from toolchat.tools.registry import ToolRegistry

logger = get_logger(__name__)

INTERNAL_ERROR = "Internal error while processing the message"


class ChatService:
    """
    Entry point for chat requests.

    Args:
        provider: Default model client; per-request overrides go through
            ``provider.for_model``
        store: Conversation store shared by all requests
        settings: Loop bound, title and system prompt configuration
        llm_settings: Model override policy (default: allow any override)
    """

    def __init__(
        self,
        provider: Provider,
        store: ConversationStore,
        settings: ChatSettings,
        llm_settings: LLMSettings | None = None,
    ):
        self._provider = provider
        self._store = store
        self._settings = settings
        self._llm_settings = llm_settings
        self._background: set[asyncio.Task] = set()
        self._titling: set[str] = set()

    def resolve_model(self, requested: str | None) -> str | None:
        """
        Decide which model a request may use.

        Returns:
            The requested model if policy allows it, otherwise None (use the
            provider's default)
        """
        if not requested:
            return None
        policy = self._llm_settings
        if policy is None:
            return requested
        if not policy.allow_model_override:
            logger.info(f"Ignoring model override {requested!r}: overrides are disabled")
            return None
        if policy.allowed_models and requested not in policy.allowed_models:
            logger.warning(f"Requested model {requested!r} is not in the allowed list")
            return None
        return requested

    async def handle(
        self,
        request: ChatRequest,
        owner: str,
        sink: EventSink,
        tools: Iterable[Tool] = (),
        cancel_event: asyncio.Event | None = None,
    ) -> TurnResult | None:
        """
        Process one user message and stream the outcome to ``sink``.

        The sink receives exactly one terminal event (done or error), except
        when the run is cancelled, where the caller has already gone away.

        Args:
            request: The inbound message and its dashboard context
            owner: Authenticated user the session belongs to
            sink: Receives every outbound event in order
            tools: Tools offered to the model for this request
            cancel_event: Set it to stop the loop at its next check

        Returns:
            The loop result, or None if the session could not be resolved
        """
        try:
            session = await self._get_or_create_session(request.session_id, owner)
        except SessionNotFoundError as e:
            logger.warning(f"Chat request rejected for {owner}: {e}")
            await sink.send(ErrorEvent(error="Session not found"))
            return None
        except Exception as e:
            logger.exception(f"Failed to resolve session for {owner}: {e}")
            await sink.send(ErrorEvent(error=INTERNAL_ERROR))
            return TurnResult(state=LoopState.ABORTED, error=str(e))

        try:
            result = await self._run(session, request, owner, sink, tools, cancel_event)
        except Exception as e:
            logger.exception(f"Unexpected error in session {session.id}: {e}")
            await sink.send(ErrorEvent(error=INTERNAL_ERROR))
            return TurnResult(state=LoopState.ABORTED, error=str(e))

        if result.state is LoopState.FINISHED:
            await sink.send(DoneEvent())
        elif result.state is LoopState.ABORTED:
            await sink.send(ErrorEvent(error=result.error or "AI Provider error"))

        logger.info(
            f"Session {session.id}: {result.state.value} after {result.rounds} round(s)"
        )
        return result

    async def _run(
        self,
        session: Session,
        request: ChatRequest,
        owner: str,
        sink: EventSink,
        tools: Iterable[Tool],
        cancel_event: asyncio.Event | None,
    ) -> TurnResult:
        """Everything between session resolution and the terminal event."""
        provider = self._provider.for_model(self.resolve_model(request.model_override))
        registry = ToolRegistry.for_request(tools, request.context)
        tool_context = ToolContext(session_id=session.id, owner=owner, chat=request.context)

        async with self._store.lock(session.id):
            # Reload under the lock so the history includes everything a
            # previous request on this session appended
            session = await self._store.load(session.id)
            messages = self._build_history(session, request)

            await self._store.append_turn(session.id, Turn.user(request.message))
            if self._should_generate_title(session):
                self._spawn_title(session.id, request.message, provider)

            await sink.send(SessionEvent(session_id=session.id))

            loop = TurnLoop(
                provider,
                registry,
                self._store,
                sink,
                max_rounds=self._settings.max_rounds,
            )
            result = await loop.run(session.id, messages, tool_context, cancel_event)

        if result.state is LoopState.FINISHED:
            await self._store.touch(session.id)
        return result

    async def _get_or_create_session(self, session_id: str | None, owner: str) -> Session:
        if session_id:
            return await self._store.load(session_id, owner=owner)
        session = await self._store.create(owner, self._settings.title_placeholder)
        logger.info(f"Created session {session.id} for {owner}")
        return session

    def _build_history(self, session: Session, request: ChatRequest) -> list[dict[str, Any]]:
        """System prompt, then every stored turn, then the new user message."""
        system_prompt = build_system_prompt(self._settings.system_prompt, request.context)
        return [
            {"role": "system", "content": system_prompt},
            *session.to_messages(),
            Turn.user(request.message).to_message(),
        ]

    # ------------------------------------------------------------------
    # Background title generation
    # ------------------------------------------------------------------

    def _should_generate_title(self, session: Session) -> bool:
        return (
            self._settings.generate_titles
            and session.title == self._settings.title_placeholder
            and session.id not in self._titling
        )

    def _spawn_title(self, session_id: str, message: str, provider: Provider) -> None:
        """
        Start title generation as an independent task.

        The task is not tied to the request: cancelling the request does not
        cancel it, and its failures are only logged.
        """
        self._titling.add(session_id)
        task = asyncio.create_task(self._generate_title(session_id, message, provider))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _generate_title(self, session_id: str, message: str, provider: Provider) -> None:
        try:
            raw = await provider.complete_round(
                [{"role": "user", "content": TITLE_PROMPT.format(message=message)}]
            )
            title = clean_title(raw, self._settings.title_max_length)
            if title:
                await self._store.set_title(session_id, title)
                logger.debug(f"Session {session_id} titled {title!r}")
        except Exception as e:
            logger.error(f"Failed to generate chat title for session {session_id}: {e}")
        finally:
            self._titling.discard(session_id)

    async def wait_for_background(self) -> None:
        """Wait for pending title tasks (used on shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
