"""
Autosave pipeline for the question editor.

Local edits to a question update its edit buffer immediately; a trailing-edge
debounce timer then saves the *current* buffer. Per question:

    idle -> dirty -> saving -> saved
                      saving -> error
    saved / error -> dirty          (on further edits)

At most one save per question is in flight. A save that completes after a
newer edit does not mark the question saved: it stays dirty and the newer
content is saved next. A failed save keeps the buffer (the edit is not
reverted) and leaves the question in error until an edit or retry() sends it
again. In-flight saves are never cancelled; staleness is detected by
comparing edit revisions instead.

Timers and tasks come from a Scheduler, so the pipeline runs on asyncio in
production and on a virtual clock in tests.
"""

import asyncio
import copy
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Set,
    Tuple,
)

from app.core.config import settings

from .optimistic import CommandResult, run_optimistic

logger = logging.getLogger(__name__)


class SaveStatus(str, enum.Enum):
    IDLE = "idle"
    DIRTY = "dirty"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Source of delayed callbacks and background tasks."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...

    def spawn(self, awaitable: Awaitable[Any]) -> Any:
        ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Task[Any]"] = set()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)

    def spawn(self, awaitable: Awaitable[Any]) -> "asyncio.Task[Any]":
        task = asyncio.ensure_future(awaitable)
        # The loop only keeps weak references to tasks.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


@dataclass
class QuestionBuffer:
    """Local, unsaved state of one question in the editor."""

    question_id: str
    text: str = ""
    options: List[Dict[str, str]] = field(default_factory=list)
    correct_option_index: int = 0

    @classmethod
    def from_question(cls, question: Any) -> "QuestionBuffer":
        """Build a buffer from a mapping or an object with question attributes."""
        if isinstance(question, Mapping):
            get = question.get
        else:
            def get(name: str, default: Any = None) -> Any:
                return getattr(question, name, default)

        return cls(
            question_id=str(get("id")),
            text=get("text", "") or "",
            options=[dict(option) for option in get("options", None) or []],
            correct_option_index=get("correct_option_index", 0) or 0,
        )

    def payload(self) -> Dict[str, Any]:
        """Copy of the fields sent to the server."""
        return {
            "text": self.text,
            "options": copy.deepcopy(self.options),
            "correct_option_index": self.correct_option_index,
        }

    # Editor helpers

    def set_text(self, text: str) -> None:
        self.text = text

    def set_option_text(self, index: int, text: str) -> None:
        self.options[index] = {**self.options[index], "text": text}

    def add_option(self, text: str = "") -> str:
        """Append an option with a temporary id. The first option is correct."""
        option_id = f"temp-{int(time.time() * 1000)}-{len(self.options)}"
        self.options.append({"id": option_id, "text": text})
        if len(self.options) == 1:
            self.correct_option_index = 0
        return option_id

    def remove_option(self, index: int) -> None:
        """Remove an option, keeping the correct index on the same option.

        Removing the correct option itself resets the choice to the first one.
        """
        del self.options[index]
        if not self.options or index == self.correct_option_index:
            self.correct_option_index = 0
        elif index < self.correct_option_index:
            self.correct_option_index -= 1

    def set_correct_option(self, index: int) -> None:
        if not 0 <= index < len(self.options):
            raise IndexError(f"No option at index {index}")
        self.correct_option_index = index


@dataclass
class _Entry:
    buffer: QuestionBuffer
    status: SaveStatus = SaveStatus.IDLE
    revision: int = 0
    saved_revision: int = 0
    in_flight: Optional[int] = None  # revision carried by the outstanding save
    follow_up: bool = False  # timer fired while a save was in flight
    timer: Optional[TimerHandle] = None
    last_error: Optional[Exception] = None


SaveFn = Callable[[str, Dict[str, Any]], Awaitable[Any]]
DeleteFn = Callable[[str], Awaitable[Any]]
StatusListener = Callable[[str, SaveStatus], None]


class AutosavePipeline:
    """Debounced, per-question save queue with save status tracking.

    Args:
        save: ``await save(question_id, payload)`` persists one question. It
            may return the saved question (a mapping); server-assigned option
            ids are then adopted into the buffer.
        delete: ``await delete(question_id)`` removes a question remotely.
        scheduler: Timer/task source. Defaults to AsyncioScheduler.
        debounce: Seconds of inactivity before a save. Defaults to
            AUTOSAVE_DEBOUNCE_SECONDS.
    """

    def __init__(
        self,
        save: SaveFn,
        delete: Optional[DeleteFn] = None,
        scheduler: Optional[Scheduler] = None,
        debounce: Optional[float] = None,
    ):
        self._save = save
        self._delete = delete
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._debounce = (
            settings.AUTOSAVE_DEBOUNCE_SECONDS if debounce is None else debounce
        )
        self._entries: Dict[str, _Entry] = {}
        self._listeners: List[StatusListener] = []

    # Registration and inspection

    def register(self, question: Any) -> QuestionBuffer:
        """Start tracking a question (already persisted) in ``idle``."""
        buffer = (
            question
            if isinstance(question, QuestionBuffer)
            else QuestionBuffer.from_question(question)
        )
        self._entries[buffer.question_id] = _Entry(buffer=buffer)
        return buffer

    def buffer(self, question_id: str) -> QuestionBuffer:
        return self._entry(question_id).buffer

    def question_ids(self) -> List[str]:
        return list(self._entries)

    def status(self, question_id: str) -> SaveStatus:
        return self._entry(question_id).status

    def statuses(self) -> Dict[str, SaveStatus]:
        return {qid: entry.status for qid, entry in self._entries.items()}

    def last_error(self, question_id: str) -> Optional[Exception]:
        return self._entry(question_id).last_error

    def aggregate_status(self) -> SaveStatus:
        """Status across all questions: saving > dirty > error > saved.

        ``idle`` when no question has been edited or saved yet.
        """
        statuses = set(entry.status for entry in self._entries.values())
        for status in (SaveStatus.SAVING, SaveStatus.DIRTY, SaveStatus.ERROR):
            if status in statuses:
                return status
        if SaveStatus.SAVED in statuses:
            return SaveStatus.SAVED
        return SaveStatus.IDLE

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Call ``listener(question_id, status)`` on every status change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # Editing

    def edit(self, question_id: str, **changes: Any) -> None:
        """Set buffer fields (text, options, correct_option_index) directly."""

        def mutate(buffer: QuestionBuffer) -> None:
            for name, value in changes.items():
                if name not in ("text", "options", "correct_option_index"):
                    raise ValueError(f"Unknown question field: {name}")
                setattr(buffer, name, copy.deepcopy(value))

        self.apply_edit(question_id, mutate)

    def apply_edit(
        self, question_id: str, mutate: Callable[[QuestionBuffer], Any]
    ) -> Any:
        """Apply an editor helper to the buffer and schedule a save.

        Example:
            pipeline.apply_edit(qid, lambda b: b.remove_option(2))
        """
        entry = self._entry(question_id)
        result = mutate(entry.buffer)
        entry.revision += 1
        self._set_status(question_id, entry, SaveStatus.DIRTY)
        self._restart_timer(question_id, entry)
        return result

    def retry(self, question_id: str) -> None:
        """Re-enter the debounce path for a question whose save failed."""
        entry = self._entry(question_id)
        if entry.status != SaveStatus.ERROR:
            return
        self._set_status(question_id, entry, SaveStatus.DIRTY)
        self._restart_timer(question_id, entry)

    def flush(self) -> List[str]:
        """Save every dirty or failed question now, skipping the debounce.

        Questions with a save already in flight are marked for a follow-up
        save instead. Returns the ids whose save was issued or queued.
        """
        flushed: List[str] = []
        for question_id, entry in list(self._entries.items()):
            if entry.status not in (SaveStatus.DIRTY, SaveStatus.ERROR):
                continue
            self._cancel_timer(entry)
            if entry.in_flight is not None:
                entry.follow_up = True
            else:
                self._issue(question_id, entry)
            flushed.append(question_id)
        return flushed

    async def delete_question(
        self, question_id: str
    ) -> CommandResult[Tuple[int, _Entry]]:
        """Optimistically remove a question, restoring it if the delete fails."""
        if self._delete is None:
            raise RuntimeError("No delete callable configured for this pipeline")
        entry = self._entry(question_id)
        deleter = self._delete

        def snapshot() -> Tuple[int, _Entry]:
            return list(self._entries).index(question_id), entry

        def apply() -> None:
            self._cancel_timer(entry)
            del self._entries[question_id]

        def rollback(before: Tuple[int, _Entry]) -> None:
            position, restored = before
            items = list(self._entries.items())
            items.insert(position, (question_id, restored))
            self._entries = dict(items)
            # apply() cancelled the debounce; a pending edit still needs saving.
            if restored.status == SaveStatus.DIRTY and restored.in_flight is None:
                self._restart_timer(question_id, restored)

        return await run_optimistic(
            snapshot, apply, rollback, lambda: deleter(question_id)
        )

    # Internals

    def _entry(self, question_id: str) -> _Entry:
        try:
            return self._entries[question_id]
        except KeyError:
            raise KeyError(f"Question {question_id} is not registered") from None

    def _is_current(self, question_id: str, entry: _Entry) -> bool:
        return self._entries.get(question_id) is entry

    def _set_status(self, question_id: str, entry: _Entry, status: SaveStatus) -> None:
        if entry.status == status:
            return
        entry.status = status
        for listener in list(self._listeners):
            listener(question_id, status)

    def _cancel_timer(self, entry: _Entry) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None

    def _restart_timer(self, question_id: str, entry: _Entry) -> None:
        self._cancel_timer(entry)
        entry.timer = self._scheduler.call_later(
            self._debounce, lambda: self._on_timer(question_id, entry)
        )

    def _on_timer(self, question_id: str, entry: _Entry) -> None:
        entry.timer = None
        if not self._is_current(question_id, entry):
            return
        if entry.in_flight is not None:
            entry.follow_up = True
            return
        self._issue(question_id, entry)

    def _issue(self, question_id: str, entry: _Entry) -> None:
        revision = entry.revision
        payload = entry.buffer.payload()
        entry.in_flight = revision
        entry.follow_up = False
        self._set_status(question_id, entry, SaveStatus.SAVING)
        self._scheduler.spawn(self._run_save(question_id, entry, revision, payload))

    async def _run_save(
        self,
        question_id: str,
        entry: _Entry,
        revision: int,
        payload: Dict[str, Any],
    ) -> None:
        try:
            result = await self._save(question_id, payload)
        except Exception as e:
            entry.in_flight = None
            entry.last_error = e
            logger.warning(
                f"Autosave of question {question_id} failed: {e}",
                extra={"question_id": question_id},
            )
            if not self._is_current(question_id, entry):
                return
            if entry.revision > revision:
                # A newer edit is pending; its save carries this content too.
                self._after_stale_save(question_id, entry)
            else:
                self._set_status(question_id, entry, SaveStatus.ERROR)
            return

        entry.in_flight = None
        entry.last_error = None
        entry.saved_revision = max(entry.saved_revision, revision)
        if not self._is_current(question_id, entry):
            return

        if entry.revision > revision:
            self._after_stale_save(question_id, entry)
            return

        self._adopt_server_ids(entry, result)
        self._set_status(question_id, entry, SaveStatus.SAVED)

    def _after_stale_save(self, question_id: str, entry: _Entry) -> None:
        self._set_status(question_id, entry, SaveStatus.DIRTY)
        if entry.follow_up:
            self._issue(question_id, entry)
        elif entry.timer is None:
            self._restart_timer(question_id, entry)

    @staticmethod
    def _adopt_server_ids(entry: _Entry, result: Any) -> None:
        if not isinstance(result, Mapping):
            return
        server_options = result.get("options")
        if not isinstance(server_options, list):
            return
        if len(server_options) != len(entry.buffer.options):
            return
        for local, remote in zip(entry.buffer.options, server_options):
            if isinstance(remote, Mapping) and remote.get("id"):
                local["id"] = remote["id"]
