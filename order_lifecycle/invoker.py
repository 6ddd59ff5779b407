"""Command execution with per-session undo history.

``CommandInvoker`` runs commands and keeps the successful, undoable ones on
a bounded stack. ``SessionInvokers`` hands every caller its own invoker so
one session can never undo another session's command. The registry keeps a
bounded number of sessions and drops the least recently used one first.
"""

import logging
import threading
from collections import OrderedDict, deque

from . import settings
from .commands import Command, CommandResult

logger = logging.getLogger(__name__)


class CommandInvoker:
    """Executes commands and undoes the most recent undoable one.

    Args:
        max_history: Maximum number of undoable commands kept. The oldest
            entry is dropped when the limit is reached.
    """

    def __init__(self, max_history: int | None = None):
        if max_history is None:
            max_history = getattr(settings, "UNDO_HISTORY_LIMIT", 50)
        self._history: deque[Command] = deque(maxlen=max_history)
        self._lock = threading.RLock()

    def execute(self, command: Command) -> CommandResult:
        """Run ``command`` and record it for undo when it succeeded.

        Unexpected exceptions raised by the command are turned into a failed
        result; they never reach the caller.
        """
        logger.info("executing command: %s", command.description)
        try:
            result = command.execute()
        except Exception as exc:
            logger.exception("command raised: %s", command.description)
            return CommandResult.fail(f"Command execution failed: {exc}", error=exc)

        if not result.success:
            logger.warning("command failed, not recorded: %s (%s)", command.description, result.message)
            return result
        if command.supports_undo():
            with self._lock:
                self._history.append(command)
            logger.debug("command recorded for undo: %s", command.description)
        return result

    def undo_last(self) -> CommandResult:
        """Undo the most recent undoable command.

        A command whose undo fails (or raises) goes back on top of the stack.
        """
        with self._lock:
            if not self._history:
                logger.warning("no commands available to undo")
                return CommandResult.fail("No commands available to undo")
            command = self._history.pop()

            logger.info("undoing command: %s", command.description)
            try:
                result = command.undo()
            except Exception as exc:
                logger.exception("undo raised: %s", command.description)
                self._history.append(command)
                return CommandResult.fail(f"Undo operation failed: {exc}", error=exc)

            if not result.success:
                logger.warning("undo failed: %s (%s)", command.description, result.message)
                self._history.append(command)
            return result

    def undoable_count(self) -> int:
        return len(self._history)

    def last_undoable_description(self) -> str | None:
        with self._lock:
            if not self._history:
                return None
            return self._history[-1].description

    def history_summary(self) -> str:
        count = self.undoable_count()
        if count == 0:
            return "No commands available for undo"
        return f"Commands available for undo: {count}. Last command: {self.last_undoable_description()}"


class SessionInvokers:
    """Keyed registry of invokers, one per caller session.

    At most ``max_sessions`` invokers are kept. When a new session would go
    over the limit, the least recently used session and its undo history
    are dropped. ``discard`` forgets a session explicitly.
    """

    def __init__(self, max_history: int | None = None, max_sessions: int | None = None):
        if max_sessions is None:
            max_sessions = getattr(settings, "UNDO_MAX_SESSIONS", 1000)
        if max_sessions < 1:
            raise ValueError("MAX_SESSIONS_MUST_BE_POSITIVE")
        self.max_history = max_history
        self.max_sessions = max_sessions
        self._invokers: OrderedDict[str, CommandInvoker] = OrderedDict()
        self._lock = threading.Lock()

    def for_session(self, session_id: str) -> CommandInvoker:
        if not session_id:
            raise ValueError("SESSION_ID_REQUIRED")
        with self._lock:
            invoker = self._invokers.get(session_id)
            if invoker is not None:
                self._invokers.move_to_end(session_id)
                return invoker
            invoker = self._invokers[session_id] = CommandInvoker(self.max_history)
            while len(self._invokers) > self.max_sessions:
                evicted, _ = self._invokers.popitem(last=False)
                logger.debug("undo history of session %s evicted", evicted)
            return invoker

    def discard(self, session_id: str) -> None:
        """Forget a session's history, e.g. when the session ends."""
        with self._lock:
            self._invokers.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._invokers

    def __len__(self) -> int:
        return len(self._invokers)
