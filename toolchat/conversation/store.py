"""
Conversation persistence.

The store is append-only: sessions are created, turns are appended, and the
title may be renamed. Nothing is ever deleted or rewritten by the chat core.

Appends to different sessions are independent and safe to run concurrently.
Requests against the same session are serialized by the caller through
``lock(session_id)``; the store itself does not order them.
"""

from __future__ import annotations

import asyncio
import json
import re
import weakref
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import UTC, datetime
from pathlib import Path

import aiofiles
import aiofiles.os

from toolchat.config.logging import get_logger
from toolchat.config.settings import StoreSettings
from toolchat.conversation.models import Role, Session, Turn

logger = get_logger(__name__)

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")

# Sessions whose tool-call ids the JSONL store keeps in memory
CALL_ID_CACHE_SIZE = 1024


class SessionNotFoundError(LookupError):
    """The session does not exist or belongs to someone else."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class TranscriptError(ValueError):
    """Appending the turn would make the transcript inconsistent."""


def check_append(session_id: str, known_call_ids: set[str], turn: Turn) -> None:
    """
    Validate a turn against the transcript it is about to join.

    Raises:
        TranscriptError: If a tool turn answers a call id that no earlier
            assistant turn requested
    """
    if turn.role is Role.TOOL and turn.tool_call_id not in known_call_ids:
        raise TranscriptError(
            f"Tool turn references unknown tool_call_id '{turn.tool_call_id}' "
            f"in session {session_id}"
        )


class ConversationStore(ABC):
    """Abstract base class for transcript storage."""

    def __init__(self) -> None:
        # Entries disappear once no request holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock(self, session_id: str) -> asyncio.Lock:
        """
        Per-session lock used to run one request at a time per session.

        Callers must keep a reference for as long as they use it, which
        ``async with store.lock(...)`` does.
        """
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    @abstractmethod
    async def create(self, owner: str, title: str) -> Session:
        """Create and persist an empty session."""

    @abstractmethod
    async def load(self, session_id: str, owner: str | None = None) -> Session:
        """
        Load a session with all its turns in append order.

        Args:
            session_id: Session to load
            owner: If given, the session must belong to this owner

        Raises:
            SessionNotFoundError: If missing, or owned by someone else
        """

    @abstractmethod
    async def append_turn(self, session_id: str, turn: Turn) -> None:
        """
        Durably append one turn and bump ``updated_at``.

        Raises:
            SessionNotFoundError: If the session does not exist
            TranscriptError: If the turn breaks the tool_call_id invariant
        """

    @abstractmethod
    async def set_title(self, session_id: str, title: str) -> None:
        """Rename a session."""

    @abstractmethod
    async def touch(self, session_id: str) -> None:
        """Bump ``updated_at`` without appending."""


class InMemoryConversationStore(ConversationStore):
    """Process-local store; sessions vanish with the process."""

    def __init__(self) -> None:
        super().__init__()
        self._sessions: dict[str, Session] = {}

    def _get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def create(self, owner: str, title: str) -> Session:
        session = Session(owner=owner, title=title)
        self._sessions[session.id] = session
        logger.debug(f"Created session {session.id} for {owner}")
        return session.model_copy(deep=True)

    async def load(self, session_id: str, owner: str | None = None) -> Session:
        session = self._get(session_id)
        if owner is not None and session.owner != owner:
            raise SessionNotFoundError(session_id)
        return session.model_copy(deep=True)

    async def append_turn(self, session_id: str, turn: Turn) -> None:
        session = self._get(session_id)
        check_append(session_id, session.tool_call_ids(), turn)
        session.turns.append(turn)
        session.updated_at = datetime.now(UTC)

    async def set_title(self, session_id: str, title: str) -> None:
        self._get(session_id).title = title

    async def touch(self, session_id: str) -> None:
        self._get(session_id).updated_at = datetime.now(UTC)


class JsonlConversationStore(ConversationStore):
    """
    File-backed store.

    Each session is two files in ``path``:
    - ``<id>.json``: session metadata (id, owner, title, timestamps),
      replaced atomically whenever it changes
    - ``<id>.turns.jsonl``: one JSON turn per line, only ever appended to
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self._path = Path(path)
        self._path.mkdir(parents=True, exist_ok=True)
        # Guards metadata read-modify-write; title updates run outside the request lock
        self._meta_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._call_ids: OrderedDict[str, set[str]] = OrderedDict()

    def _meta_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._meta_locks.get(session_id)
        if lock is None:
            lock = self._meta_locks[session_id] = asyncio.Lock()
        return lock

    def _meta_path(self, session_id: str) -> Path:
        if not _SESSION_ID_RE.match(session_id):
            raise SessionNotFoundError(session_id)
        return self._path / f"{session_id}.json"

    def _turns_path(self, session_id: str) -> Path:
        return self._path / f"{session_id}.turns.jsonl"

    async def _write_meta(self, session: Session) -> None:
        meta_path = self._meta_path(session.id)
        tmp_path = self._path / f"{session.id}.json.tmp"
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(session.model_dump_json(exclude={"turns"}))
        await aiofiles.os.replace(tmp_path, meta_path)

    async def _read_meta(self, session_id: str) -> Session:
        meta_path = self._meta_path(session_id)
        try:
            async with aiofiles.open(meta_path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            raise SessionNotFoundError(session_id) from None
        return Session.model_validate_json(raw)

    async def _read_turns(self, session_id: str) -> list[Turn]:
        turns: list[Turn] = []
        try:
            async with aiofiles.open(self._turns_path(session_id), "r", encoding="utf-8") as f:
                async for line in f:
                    line = line.strip()
                    if line:
                        turns.append(Turn.model_validate_json(line))
        except FileNotFoundError:
            pass
        return turns

    async def create(self, owner: str, title: str) -> Session:
        session = Session(owner=owner, title=title)
        await self._write_meta(session)
        logger.debug(f"Created session {session.id} for {owner} in {self._path}")
        return session

    async def load(self, session_id: str, owner: str | None = None) -> Session:
        session = await self._read_meta(session_id)
        if owner is not None and session.owner != owner:
            raise SessionNotFoundError(session_id)
        session.turns = await self._read_turns(session_id)
        return session

    async def _known_call_ids(self, session_id: str, refresh: bool = False) -> set[str]:
        """Tool-call ids requested so far, read from disk on first use."""
        ids = None if refresh else self._call_ids.get(session_id)
        if ids is None:
            turns = await self._read_turns(session_id)
            ids = {tc.id for turn in turns for tc in turn.tool_calls}
            self._call_ids[session_id] = ids
        self._call_ids.move_to_end(session_id)
        while len(self._call_ids) > CALL_ID_CACHE_SIZE:
            self._call_ids.popitem(last=False)
        return ids

    async def append_turn(self, session_id: str, turn: Turn) -> None:
        async with self._meta_lock(session_id):
            session = await self._read_meta(session_id)
            known = await self._known_call_ids(session_id)
            if turn.role is Role.TOOL and turn.tool_call_id not in known:
                # Another store on the same directory may have appended the request
                known = await self._known_call_ids(session_id, refresh=True)
            check_append(session_id, known, turn)

            async with aiofiles.open(self._turns_path(session_id), "a", encoding="utf-8") as f:
                await f.write(turn.model_dump_json() + "\n")
                await f.flush()
            known.update(tc.id for tc in turn.tool_calls)

            session.updated_at = datetime.now(UTC)
            await self._write_meta(session)

    async def set_title(self, session_id: str, title: str) -> None:
        async with self._meta_lock(session_id):
            session = await self._read_meta(session_id)
            session.title = title
            await self._write_meta(session)

    async def touch(self, session_id: str) -> None:
        async with self._meta_lock(session_id):
            session = await self._read_meta(session_id)
            session.updated_at = datetime.now(UTC)
            await self._write_meta(session)


def create_store(settings: StoreSettings) -> ConversationStore:
    """Build the store selected by ``settings.backend``."""
    if settings.backend == "memory":
        return InMemoryConversationStore()
    if settings.backend == "jsonl":
        return JsonlConversationStore(settings.path)
    raise ValueError(f"Unknown store backend: {settings.backend!r}")


def dump_transcript(session: Session) -> str:
    """Human-readable transcript, one block per turn."""
    lines = [f"# {session.title} ({session.id})"]
    for turn in session.turns:
        header = turn.role.value
        if turn.tool_call_id:
            header += f" [{turn.tool_call_id}]"
        if turn.incomplete:
            header += " (incomplete)"
        lines.append(f"\n[{header}] {turn.created_at.isoformat()}")
        if turn.content:
            lines.append(turn.content)
        for tc in turn.tool_calls:
            lines.append(f"-> {tc.name}({tc.arguments}) id={tc.id}")
    return "\n".join(lines)
