"""Registry of in-flight conversation turns.

A session has at most one turn in flight: a streamed model response, a tool
call execution or a resumed turn after a tool call. Each turn carries a cancel
token the streaming loop checks between chunks.
"""

import asyncio
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class TurnInProgressError(RuntimeError):
    """A turn is already in flight for the session."""

    def __init__(self, session_id: str):
        super().__init__(f"A response is already being generated for session {session_id}")
        self.session_id = session_id


@dataclass
class Turn:
    """One in-flight turn.

    Attributes:
        session_id: Session the turn belongs to
        message_id: Id of the assistant message being generated, once known
    """

    session_id: str
    message_id: str | None = None
    _cancelled: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _held_by: set[asyncio.Future] = field(default_factory=set, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def hold(self, work: asyncio.Future) -> None:
        """Keep the turn in flight until ``work`` is done, even after it ended."""
        self._held_by.add(work)
        work.add_done_callback(self._held_by.discard)

    def pending_work(self) -> list[asyncio.Future]:
        return [work for work in self._held_by if not work.done()]


class TurnRegistry:
    def __init__(self) -> None:
        self._turns: dict[str, Turn] = {}

    def begin(self, session_id: str) -> Turn:
        """Register a new turn for ``session_id``.

        Raises:
            TurnInProgressError: If the session already has a turn in flight
        """
        if session_id in self._turns:
            raise TurnInProgressError(session_id)
        turn = Turn(session_id=session_id)
        self._turns[session_id] = turn
        logger.debug(f"Turn started for session {session_id}")
        return turn

    def end(self, turn: Turn) -> None:
        """Release ``turn`` if it is still the session's current turn.

        A turn held by unfinished work is released once that work is done.
        """
        if self._turns.get(turn.session_id) is not turn:
            return
        pending = turn.pending_work()
        if pending:
            logger.info(
                f"Turn for session {turn.session_id} stays in flight until "
                f"{len(pending)} tool execution(s) finish"
            )
            for work in pending:
                work.add_done_callback(lambda _: self.end(turn))
            return
        del self._turns[turn.session_id]
        logger.debug(f"Turn ended for session {turn.session_id}")

    def get(self, session_id: str) -> Turn | None:
        return self._turns.get(session_id)

    def is_active(self, session_id: str) -> bool:
        return session_id in self._turns

    def cancel(self, session_id: str, message_id: str | None = None) -> bool:
        """Request cancellation of the session's in-flight turn.

        Args:
            session_id: Session whose turn should stop
            message_id: If given, only cancel when it matches the turn's message

        Returns:
            bool: True if a turn was signalled
        """
        turn = self._turns.get(session_id)
        if turn is None:
            return False
        if message_id is not None and turn.message_id != message_id:
            return False
        turn.cancel()
        logger.info(f"Cancellation requested for turn of session {session_id}")
        return True
