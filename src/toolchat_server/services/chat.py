"""ChatService: one conversation turn, including tool calls and resumption.

A turn streams the model response, inspects it for a trailing tool call block
and either finalizes it as an assistant message or hands the call over to the
``ToolCallWorkflow``. After a tool result or a denial the conversation is
resumed with the updated transcript; after a tool failure it is not.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from toolchat_server.models.chat import (
    ContentDeltaEvent,
    ErrorEvent,
    MessageCompleteEvent,
    NoticeEvent,
    StreamEvent,
    ToolCallEvent,
)
from toolchat_server.ollama.client import ChatChunk, OllamaClient, OllamaError
from toolchat_server.servers.manager import ConnectionManager
from toolchat_server.servers.registry import build_tool_prompt
from toolchat_server.services.notifications import NotificationHub
from toolchat_server.services.turns import Turn
from toolchat_server.sessions.manager import SessionManager
from toolchat_server.sessions.session import ChatSession, utc_timestamp
from toolchat_server.sessions.types import (
    AssistantMessage,
    SystemMessage,
    UserMessage,
)
from toolchat_server.tool_calls.detector import (
    MalformedToolCall,
    ToolCallDetector,
    ToolCallRequest,
    malformed_notice,
)
from toolchat_server.tool_calls.records import ToolCallNotFoundError
from toolchat_server.tool_calls.workflow import ToolCallOutcome, ToolCallWorkflow

logger = logging.getLogger(__name__)

# Tool executions outliving the request that started them
_executions: set[asyncio.Future] = set()


@dataclass
class _CompletionStep:
    request: ToolCallRequest | None = None
    failed: bool = False
    cancelled: bool = False


def tool_call_event(message: AssistantMessage) -> ToolCallEvent:
    record = message.tool_call_info
    if record is None:
        raise ToolCallNotFoundError(f"Message {message.message_id} holds no tool call")
    return ToolCallEvent(
        message_id=message.message_id,
        call_id=record.call_id,
        server_id=record.server_id,
        tool_name=record.tool_name,
        status=record.type,
        content=message.content,
    )


class ChatService:
    """Runs conversation turns against Ollama with tool call support.

    Attributes:
        max_tool_rounds: Maximum number of automatic resumptions in one turn
    """

    def __init__(
        self,
        ollama_client: OllamaClient,
        session_manager: SessionManager,
        manager: ConnectionManager,
        workflow: ToolCallWorkflow,
        notifications: NotificationHub,
        max_tool_rounds: int = 8,
    ):
        self.ollama_client = ollama_client
        self.session_manager = session_manager
        self.manager = manager
        self.workflow = workflow
        self.notifications = notifications
        self.max_tool_rounds = max_tool_rounds

    # --- History ---

    def system_prompt(self, session: ChatSession) -> str:
        """Session system prompt followed by the tool instructions, if any."""
        parts = [
            session.metadata.system_prompt.strip(),
            build_tool_prompt(self.manager, session.metadata.selected_server_ids),
        ]
        return "\n\n".join(part for part in parts if part)

    def build_history(self, session: ChatSession) -> list[dict[str, Any]]:
        """Compose the messages sent to the model.

        The window holds the last ``max_history`` non-empty user and assistant
        messages. System notices in the transcript are never sent.
        """
        conversation = [
            message
            for message in session.messages
            if isinstance(message, (UserMessage, AssistantMessage))
            and message.content.strip()
        ]
        max_history = session.metadata.max_history
        window = conversation[-max_history:] if max_history > 0 else []

        history: list[dict[str, Any]] = []
        system_prompt = self.system_prompt(session)
        if system_prompt:
            history.append({"role": "system", "content": system_prompt})
        history.extend({"role": m.role, "content": m.content} for m in window)
        return history

    # --- Turns ---

    async def run_turn(
        self, session: ChatSession, turn: Turn, rounds: int = 0
    ) -> AsyncIterator[StreamEvent]:
        """Generate one model response and follow any tool call it makes.

        Args:
            session: Session to extend; persisted after every change
            turn: In-flight turn, checked for cancellation between chunks
            rounds: Number of resumptions already made in this turn

        Yields:
            StreamEvent: Content deltas, completed messages, tool call updates,
            notices and errors
        """
        step = _CompletionStep()
        async for event in self._stream_completion(session, turn, step):
            yield event

        if step.request is None:
            return

        message = self.workflow.begin(session, step.request, model=session.model)
        if message is None:
            notice = session.messages[-1]
            if isinstance(notice, SystemMessage):
                yield NoticeEvent(message_id=notice.message_id, content=notice.content)
            return

        async for event in self.continue_tool_call(session, turn, message, rounds):
            yield event

    async def continue_tool_call(
        self,
        session: ChatSession,
        turn: Turn,
        message: AssistantMessage,
        rounds: int = 0,
    ) -> AsyncIterator[StreamEvent]:
        """Report a tool call message and, if it is running, execute and resume."""
        yield tool_call_event(message)
        record = message.tool_call_info
        if record is None or record.type != "running":
            return

        outcome = await self._execute(session, turn, message.message_id)
        yield tool_call_event(outcome.message)

        if outcome.should_resume:
            async for event in self.resume(session, turn, rounds + 1):
                yield event

    async def resume(
        self, session: ChatSession, turn: Turn, rounds: int = 1
    ) -> AsyncIterator[StreamEvent]:
        """Re-invoke the model after a tool outcome was fed back."""
        if turn.cancelled:
            logger.info(f"Turn for session {session.session_id} cancelled, not resuming")
            return
        if rounds > self.max_tool_rounds:
            message = f"Stopped after {self.max_tool_rounds} consecutive tool calls."
            logger.warning(f"Session {session.session_id}: {message}")
            self.notifications.warning(message)
            yield ErrorEvent(
                code="tool_round_limit",
                message=message,
                details={"session_id": session.session_id},
            )
            return

        logger.info(f"Resuming session {session.session_id} after tool call (round {rounds})")
        async for event in self.run_turn(session, turn, rounds):
            yield event

    async def deny_and_resume(
        self, session: ChatSession, turn: Turn, outcome: ToolCallOutcome
    ) -> AsyncIterator[StreamEvent]:
        yield tool_call_event(outcome.message)
        async for event in self.resume(session, turn, 1):
            yield event

    async def _execute(
        self, session: ChatSession, turn: Turn, message_id: str
    ) -> ToolCallOutcome:
        # The tool call finishes and is recorded even if the request goes away.
        # The turn stays in flight until then.
        execution = asyncio.ensure_future(self.workflow.execute(session, message_id))
        _executions.add(execution)
        execution.add_done_callback(_executions.discard)
        turn.hold(execution)
        return await asyncio.shield(execution)

    async def _stream_completion(
        self, session: ChatSession, turn: Turn, step: _CompletionStep
    ) -> AsyncIterator[StreamEvent]:
        messages = self.build_history(session)
        message_id = uuid.uuid4().hex[:10]
        turn.message_id = message_id
        detector = ToolCallDetector()
        final_chunk: ChatChunk | None = None

        logger.info(
            f"Streaming completion for session {session.session_id} "
            f"with {len(messages)} messages"
        )

        try:
            async for chunk in self.ollama_client.chat_stream(
                model=session.model,
                messages=messages,
            ):
                if turn.cancelled:
                    logger.info(f"Completion for session {session.session_id} cancelled")
                    step.cancelled = True
                    break

                if chunk.content:
                    detector.feed(chunk.content)
                    yield ContentDeltaEvent(content=chunk.content)

                if chunk.done:
                    final_chunk = chunk
                    break
        except Exception as e:
            logger.error(f"Error during completion for session {session.session_id}: {e}")
            step.failed = True
            details: dict[str, Any] = {"session_id": session.session_id}
            if isinstance(e, OllamaError) and e.status_code is not None:
                details["status_code"] = e.status_code
            yield ErrorEvent(
                code="ollama_error",
                message=f"Failed to generate response: {str(e)}",
                details=details,
            )
            return

        text = detector.text
        detection = None if step.cancelled else detector.finish()

        if isinstance(detection, ToolCallRequest):
            step.request = detection
            text = detection.leading_text
        elif isinstance(detection, MalformedToolCall):
            text = text + malformed_notice(detection)

        if not text.strip():
            return

        assistant_message = AssistantMessage(
            content=text,
            model=session.model,
            message_id=message_id,
            timestamp=utc_timestamp(),
            eval_count=final_chunk.eval_count if final_chunk else None,
            prompt_eval_count=final_chunk.prompt_eval_count if final_chunk else None,
        )
        session.add_message(assistant_message)
        self.session_manager.save(session)
        logger.debug(f"Saved assistant message {message_id} in session {session.session_id}")

        yield MessageCompleteEvent(
            message_id=message_id,
            model=session.model,
            content=text,
            eval_count=assistant_message.eval_count,
            prompt_eval_count=assistant_message.prompt_eval_count,
            cancelled=step.cancelled,
        )
