"""ToolCallWorkflow: approval and execution of a single detected tool call.

Every tool call is displayed by exactly one assistant message. The workflow
rewrites that message (content and ``tool_call_info``) on each transition and
persists the session after each step. The message id and call id never change.
"""

import logging
import uuid
from dataclasses import dataclass

from toolchat_server.servers.config import ServerConfig
from toolchat_server.servers.manager import ConnectionManager
from toolchat_server.services.notifications import NotificationHub
from toolchat_server.sessions.manager import SessionManager
from toolchat_server.sessions.session import ChatSession, utc_timestamp
from toolchat_server.sessions.types import (
    AssistantMessage,
    PendingToolCall,
    RunningToolCall,
    SystemMessage,
    ToolCallRecord,
    UserMessage,
)
from toolchat_server.tool_calls import feedback, rendering
from toolchat_server.tool_calls.detector import ToolCallRequest
from toolchat_server.tool_calls.records import (
    ToolCallNotFoundError,
    ToolCallStateError,
    to_denied,
    to_error,
    to_result,
    to_running,
)

logger = logging.getLogger(__name__)


@dataclass
class ToolCallOutcome:
    """Result of one workflow step.

    Attributes:
        message: The tool call message after the step
        feedback: Message to resume the conversation with, if any
    """

    message: AssistantMessage
    feedback: UserMessage | None = None

    @property
    def should_resume(self) -> bool:
        return self.feedback is not None


class ToolCallWorkflow:
    """Drives a tool call from ``pending`` to a terminal state."""

    def __init__(
        self,
        manager: ConnectionManager,
        session_manager: SessionManager,
        notifications: NotificationHub,
    ):
        self.manager = manager
        self.session_manager = session_manager
        self.notifications = notifications

    # --- Detection to pending ---

    def _precondition_error(self, request: ToolCallRequest) -> str | None:
        config = self.manager.config_store.get(request.server_id)
        if config is None:
            return (
                f'MCP Error: Configuration for server ID "{request.server_id}" not found. '
                f'Cannot call tool "{request.tool_name}".'
            )
        if not config.enabled:
            return (
                f'MCP Error: Server "{config.name}" (ID: {request.server_id}) is disabled. '
                f'Cannot call tool "{request.tool_name}".'
            )

        state = self.manager.get_state(request.server_id)
        if not state.is_connected or state.client is None:
            return (
                f'MCP Error: Server "{config.name}" (ID: {request.server_id}) is not connected. '
                f'Cannot call tool "{request.tool_name}".'
            )

        tools = state.capabilities.tools if state.capabilities else []
        if not any(tool.name == request.tool_name for tool in tools):
            available = ", ".join(tool.name for tool in tools) or "None"
            return (
                f'MCP Error: Tool "{request.tool_name}" not found on server "{config.name}" '
                f"(ID: {request.server_id}). Available tools: {available}"
            )
        return None

    def begin(
        self, session: ChatSession, request: ToolCallRequest, model: str = ""
    ) -> AssistantMessage | None:
        """Check preconditions and add the pending tool call message.

        When the server auto-approves tools, the record moves to ``running``
        before the message is persisted or returned.

        Args:
            session: Session the call belongs to
            request: The detected call
            model: Model that requested the call

        Returns:
            The tool call message, or None if a precondition failed and a
            notice was added instead
        """
        problem = self._precondition_error(request)
        if problem is not None:
            logger.warning(problem)
            self.notifications.error(problem)
            session.add_message(
                SystemMessage(
                    content=problem,
                    message_id=uuid.uuid4().hex[:10],
                    timestamp=utc_timestamp(),
                )
            )
            self.session_manager.save(session)
            return None

        config: ServerConfig = self.manager.config_store.require(request.server_id)
        record = PendingToolCall(
            call_id=request.call_id,
            server_id=request.server_id,
            tool_name=request.tool_name,
            server_name=config.name,
            args=request.arguments,
        )
        message = AssistantMessage(
            content=rendering.pending_content(record.tool_name, config.name, record.args),
            model=model,
            message_id=uuid.uuid4().hex[:10],
            timestamp=utc_timestamp(),
            tool_call_info=record,
        )
        session.add_message(message)

        if config.auto_approve_tools:
            logger.info(f"Auto-approving tool call {record.call_id} on {record.server_id}")
            message = self._mark_running(session, message, record)
        else:
            logger.info(f"Tool call {record.call_id} requires manual approval")

        self.session_manager.save(session)
        return message

    # --- Helpers ---

    def find_call(
        self, session: ChatSession, message_id: str
    ) -> tuple[AssistantMessage, ToolCallRecord]:
        """Get the message displaying a tool call together with its record.

        Raises:
            ToolCallNotFoundError: If the message does not exist or holds no tool call
        """
        message = session.find_message(message_id)
        if not isinstance(message, AssistantMessage) or message.tool_call_info is None:
            raise ToolCallNotFoundError(
                f"No tool call message {message_id} in session {session.session_id}"
            )
        return message, message.tool_call_info

    def _rewrite(
        self,
        session: ChatSession,
        message: AssistantMessage,
        record: ToolCallRecord,
        content: str,
    ) -> AssistantMessage:
        updated = AssistantMessage(
            content=content,
            model=message.model,
            message_id=message.message_id,
            timestamp=message.timestamp,
            tool_call_info=record,
        )
        session.replace_message(message.message_id, updated)
        return updated

    def _mark_running(
        self, session: ChatSession, message: AssistantMessage, record: ToolCallRecord
    ) -> AssistantMessage:
        running = to_running(record)
        return self._rewrite(
            session,
            message,
            running,
            rendering.running_content(running.tool_name, running.server_name, running.call_id),
        )

    def _server_name(self, record: ToolCallRecord) -> str:
        name = getattr(record, "server_name", "")
        if name:
            return name
        config = self.manager.config_store.get(record.server_id)
        return config.name if config else record.server_id

    # --- User decisions ---

    def deny(self, session: ChatSession, message_id: str) -> ToolCallOutcome:
        """Reject a pending call and produce the denial feedback.

        Raises:
            ToolCallNotFoundError: If the message holds no tool call
            ToolCallStateError: If the call is not pending
        """
        message, current = self.find_call(session, message_id)
        server_name = self._server_name(current)
        record = to_denied(current)

        updated = self._rewrite(
            session,
            message,
            record,
            rendering.denied_content(record.tool_name, server_name),
        )
        note = feedback.denial_feedback(record, server_name)
        session.add_message(note)
        self.session_manager.save(session)

        logger.info(f"User denied tool call {record.call_id} ({record.tool_name})")
        self.notifications.info(f'Tool call "{record.tool_name}" denied.')
        return ToolCallOutcome(message=updated, feedback=note)

    def approve(self, session: ChatSession, message_id: str) -> AssistantMessage:
        """Move a pending call to ``running``, or to ``error`` if its server is gone.

        Returns:
            The rewritten message; run ``execute`` next if it is running

        Raises:
            ToolCallNotFoundError: If the message holds no tool call
            ToolCallStateError: If the call is not pending
        """
        message, record = self.find_call(session, message_id)
        server_name = self._server_name(record)

        state = self.manager.get_state(record.server_id)
        if not state.is_connected or state.client is None:
            error = f'Server "{server_name}" disconnected before tool call could be approved.'
            failed = self._rewrite(
                session, message, to_error(record, error), f"Error: {error}"
            )
            self.session_manager.save(session)
            self.notifications.error(
                f'MCP Error: Server "{server_name}" is no longer connected. Cannot run tool.'
            )
            return failed

        logger.info(f"User approved tool call {record.call_id} ({record.tool_name})")
        running = self._mark_running(session, message, record)
        self.session_manager.save(session)
        return running

    # --- Execution ---

    async def execute(self, session: ChatSession, message_id: str) -> ToolCallOutcome:
        """Invoke the tool of a running call and record the outcome.

        A successful call yields a result record and feedback for resuming the
        conversation. A failed call yields an error record and no feedback.

        Raises:
            ToolCallNotFoundError: If the message holds no tool call
            ToolCallStateError: If the call is not running
        """
        message, record = self.find_call(session, message_id)
        if not isinstance(record, RunningToolCall):
            raise ToolCallStateError(record.call_id, record.type, "result")

        state = self.manager.get_state(record.server_id)
        try:
            if not state.is_connected or state.client is None:
                raise RuntimeError(f'Server "{record.server_name}" is not connected')
            logger.info(
                f"Calling tool {record.tool_name} on {record.server_id} (call {record.call_id})"
            )
            result = await state.client.call_tool(record.tool_name, record.args)
        except Exception as e:
            error_message = getattr(e, "message", None) or str(e) or "Unknown execution error"
            logger.error(f"Tool call {record.call_id} ({record.tool_name}) failed: {error_message}")
            failed = self._rewrite(
                session,
                message,
                to_error(record, error_message),
                rendering.error_content(record.tool_name, record.server_name, error_message),
            )
            self.session_manager.save(session)
            self.notifications.error(f'Tool "{record.tool_name}" failed: {error_message}')
            return ToolCallOutcome(message=failed)

        completed = to_result(record)
        updated = self._rewrite(
            session,
            message,
            completed,
            rendering.result_content(record.call_id, rendering.format_tool_result(result)),
        )
        note = feedback.result_feedback(completed, rendering.format_result_for_model(result))
        session.add_message(note)
        self.session_manager.save(session)

        logger.info(f"Tool call {record.call_id} ({record.tool_name}) completed")
        return ToolCallOutcome(message=updated, feedback=note)
