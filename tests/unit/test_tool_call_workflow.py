"""Unit tests for the approval and execution workflow of a tool call."""

import uuid

import pytest
from mcp.types import CallToolResult, TextContent

from toolchat_server.mcp_client import McpClientError
from toolchat_server.servers.builtin import EXPR_EVALUATOR_ID, TIME_SERVER_ID
from toolchat_server.sessions import (
    AssistantMessage,
    SessionCreationOptions,
    SystemMessage,
    UserMessage,
)
from toolchat_server.tool_calls.detector import ToolCallRequest
from toolchat_server.tool_calls.records import ToolCallNotFoundError, ToolCallStateError
from toolchat_server.tool_calls.workflow import ToolCallWorkflow


@pytest.fixture
def workflow(manager, session_manager, notifications) -> ToolCallWorkflow:
    return ToolCallWorkflow(manager, session_manager, notifications)


@pytest.fixture
def session(session_manager):
    return session_manager.create_session(
        SessionCreationOptions(model="llama3.2:latest", selected_server_ids=[EXPR_EVALUATOR_ID])
    )


def _request(server_id: str = EXPR_EVALUATOR_ID, tool_name: str = "expr_evaluator") -> ToolCallRequest:
    return ToolCallRequest(
        call_id=str(uuid.uuid4()),
        server_id=server_id,
        tool_name=tool_name,
        arguments={"expression": "2+2"},
        leading_text="",
    )


# --- begin ---


@pytest.mark.asyncio
async def test_begin_adds_pending_message(workflow, manager, session, session_manager):
    await manager.connect(EXPR_EVALUATOR_ID)
    request = _request()

    message = workflow.begin(session, request, model="llama3.2:latest")

    assert message is not None
    assert message.tool_call_info.type == "pending"
    assert message.tool_call_info.call_id == request.call_id
    assert message.tool_call_info.server_name == "Expression Evaluator"
    assert "Wants to use tool: **expr_evaluator**" in message.content
    saved = session_manager.get_session(session.session_id)
    assert saved.messages[-1].tool_call_info.type == "pending"


@pytest.mark.asyncio
async def test_begin_auto_approves_before_persisting(
    workflow, manager, config_store, session, session_manager
):
    config_store.update(EXPR_EVALUATOR_ID, {"auto_approve_tools": True})
    await manager.connect(EXPR_EVALUATOR_ID)

    message = workflow.begin(session, _request())

    assert message.tool_call_info.type == "running"
    assert message.content.startswith("Running tool: **expr_evaluator**")
    saved = session_manager.get_session(session.session_id)
    assert saved.messages[-1].tool_call_info.type == "running"
    assert saved.messages[-1].message_id == message.message_id


@pytest.mark.asyncio
async def test_begin_refuses_disconnected_server(workflow, session, notifications):
    message = workflow.begin(session, _request())

    assert message is None
    notice = session.messages[-1]
    assert isinstance(notice, SystemMessage)
    assert "is not connected" in notice.content
    assert notifications.recent()[-1].level.value == "error"


@pytest.mark.asyncio
async def test_begin_refuses_unknown_and_disabled_servers(workflow, session):
    assert workflow.begin(session, _request(server_id="custom::missing")) is None
    assert "not found" in session.messages[-1].content

    assert workflow.begin(session, _request(server_id=TIME_SERVER_ID)) is None
    assert "is disabled" in session.messages[-1].content


@pytest.mark.asyncio
async def test_begin_refuses_unknown_tool(workflow, manager, session):
    await manager.connect(EXPR_EVALUATOR_ID)

    message = workflow.begin(session, _request(tool_name="rm_rf"))

    assert message is None
    assert "Available tools: expr_evaluator" in session.messages[-1].content


# --- approve / deny ---


@pytest.mark.asyncio
async def test_approve_moves_to_running(workflow, manager, session):
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())

    running = workflow.approve(session, pending.message_id)

    assert running.tool_call_info.type == "running"
    assert running.message_id == pending.message_id
    assert running.timestamp == pending.timestamp


@pytest.mark.asyncio
async def test_approve_after_disconnect_fails_the_call(workflow, manager, session, notifications):
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())
    await manager.disconnect(EXPR_EVALUATOR_ID)

    failed = workflow.approve(session, pending.message_id)

    assert failed.tool_call_info.type == "error"
    assert failed.content == (
        'Error: Server "Expression Evaluator" disconnected before tool call could be approved.'
    )
    assert "no longer connected" in notifications.recent()[-1].message


@pytest.mark.asyncio
async def test_deny_records_denial_and_feedback(workflow, manager, session):
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())

    outcome = workflow.deny(session, pending.message_id)

    assert outcome.message.tool_call_info.type == "denied"
    assert outcome.should_resume
    assert isinstance(session.messages[-1], UserMessage)
    assert session.messages[-1] is outcome.feedback
    assert "was denied by the user" in outcome.feedback.content


@pytest.mark.asyncio
async def test_decisions_on_terminal_calls_are_rejected(workflow, manager, session):
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())
    workflow.deny(session, pending.message_id)

    with pytest.raises(ToolCallStateError):
        workflow.approve(session, pending.message_id)
    with pytest.raises(ToolCallStateError):
        workflow.deny(session, pending.message_id)


def test_unknown_message_is_not_found(workflow, session):
    with pytest.raises(ToolCallNotFoundError):
        workflow.approve(session, "nope")


# --- execute ---


@pytest.mark.asyncio
async def test_execute_records_result_and_feedback(
    workflow, manager, session, session_manager, client_factory
):
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())
    workflow.approve(session, pending.message_id)
    count_before = len(session.messages)

    outcome = await workflow.execute(session, pending.message_id)

    assert client_factory.clients[0].calls == [("expr_evaluator", {"expression": "2+2"})]
    assert outcome.message.tool_call_info.type == "result"
    assert outcome.message.content.startswith("```json:mcp-tool-resp[call-id=")
    assert outcome.message.content.endswith("\n4\n```")
    assert outcome.should_resume
    assert "Result: 4)" in outcome.feedback.content
    assert len(session.messages) == count_before + 1
    assert session_manager.get_session(session.session_id).messages[-1].role == "user"


@pytest.mark.asyncio
async def test_execute_error_result_is_still_a_result(workflow, manager, session, client_factory):
    client_factory.call_result = CallToolResult(
        content=[TextContent(type="text", text="Evaluation failed: bad")], isError=True
    )
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())
    workflow.approve(session, pending.message_id)

    outcome = await workflow.execute(session, pending.message_id)

    assert outcome.message.tool_call_info.type == "result"
    assert "Error: Evaluation failed: bad" in outcome.message.content


@pytest.mark.asyncio
async def test_execute_failure_records_error_without_resume(
    workflow, manager, session, client_factory, notifications
):
    client_factory.call_error = McpClientError("request_timeout", "Request timed out")
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())
    workflow.approve(session, pending.message_id)
    count_before = len(session.messages)

    outcome = await workflow.execute(session, pending.message_id)

    assert outcome.message.tool_call_info.type == "error"
    assert outcome.message.tool_call_info.error_message == "Request timed out"
    assert not outcome.should_resume
    assert len(session.messages) == count_before
    assert "failed: Request timed out" in notifications.recent()[-1].message


@pytest.mark.asyncio
async def test_execute_requires_running_call(workflow, manager, session):
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())

    with pytest.raises(ToolCallStateError):
        await workflow.execute(session, pending.message_id)


@pytest.mark.asyncio
async def test_tool_call_message_keeps_its_identity(workflow, manager, session):
    await manager.connect(EXPR_EVALUATOR_ID)
    pending = workflow.begin(session, _request())
    workflow.approve(session, pending.message_id)
    outcome = await workflow.execute(session, pending.message_id)

    tool_messages = [
        m for m in session.messages if isinstance(m, AssistantMessage) and m.tool_call_info
    ]
    assert len(tool_messages) == 1
    assert outcome.message.message_id == pending.message_id
    assert outcome.message.tool_call_info.call_id == pending.tool_call_info.call_id
