"""Unit tests for human review decision slots."""

import asyncio

import pytest

from src.api.services.orchestration.errors import HumanGateBusyError
from src.api.services.orchestration.events import OrchestrationNotifier
from src.api.services.orchestration.human_gate import HumanGate
from src.api.services.orchestration.types import (
    HumanReviewDecision,
    ReviewDecision,
    WorkflowStage,
    WorkflowState,
)


def _review_state():
    state = WorkflowState(task="Write a slogan", participant_names=["A", "B"])
    state.transition_to(WorkflowStage.HUMAN_REVIEW)
    return state


async def _request(gate, state, observer):
    notifier = OrchestrationNotifier(send=observer.send)
    task = asyncio.create_task(gate.request(state, "Please review", notifier))
    request = await observer.wait_for(lambda m: m.get("message_kind") == "human-input-request")
    return task, request["request_id"]


@pytest.mark.asyncio
async def test_request_announces_prompt_and_suspends(observer):
    gate = HumanGate(timeout_seconds=5)
    state = _review_state()
    task, request_id = await _request(gate, state, observer)

    assert state.awaiting_human is True
    assert gate.pending_for(state.session_id).request_id == request_id
    assert not task.done()
    assert observer.of_type("workflow_state")[-1]["awaiting_human"] is True

    assert gate.resolve(request_id, HumanReviewDecision.approve()) is True
    decision = await task
    assert decision.decision == ReviewDecision.APPROVE
    assert decision.request_id == request_id
    assert state.awaiting_human is False
    assert gate.pending_count() == 0


@pytest.mark.asyncio
async def test_first_resolution_wins(observer):
    gate = HumanGate(timeout_seconds=5)
    state = _review_state()
    task, request_id = await _request(gate, state, observer)

    assert gate.resolve(request_id, HumanReviewDecision.revise("shorter")) is True
    assert gate.resolve(request_id, HumanReviewDecision.approve()) is False
    decision = await task
    assert decision.decision == ReviewDecision.REVISE
    assert decision.feedback == "shorter"
    assert gate.resolve(request_id, HumanReviewDecision.approve()) is False


@pytest.mark.asyncio
async def test_unknown_request_id_is_ignored():
    gate = HumanGate()
    assert gate.resolve("missing", HumanReviewDecision.approve()) is False


@pytest.mark.asyncio
async def test_foreign_session_cannot_resolve(observer):
    gate = HumanGate(timeout_seconds=5)
    state = _review_state()
    task, request_id = await _request(gate, state, observer)

    assert gate.resolve(request_id, HumanReviewDecision.approve(), session_id="someone-else") is False
    assert not task.done()
    assert gate.resolve(request_id, HumanReviewDecision.cancel(), session_id=state.session_id) is True
    assert (await task).decision == ReviewDecision.CANCEL


@pytest.mark.asyncio
async def test_timeout_synthesizes_continue(observer):
    gate = HumanGate(timeout_seconds=0.05)
    state = _review_state()
    notifier = OrchestrationNotifier(send=observer.send)

    decision = await gate.request(state, "Please review", notifier)

    assert decision.decision == ReviewDecision.CONTINUE
    assert decision.timed_out is True
    assert decision.feedback
    assert gate.pending_count() == 0
    assert state.awaiting_human is False


@pytest.mark.asyncio
async def test_cancel_session_resolves_as_cancel(observer):
    gate = HumanGate(timeout_seconds=5)
    state = _review_state()
    task, request_id = await _request(gate, state, observer)

    assert gate.cancel_session(state.session_id, "Session reset") is True
    decision = await task
    assert decision.decision == ReviewDecision.CANCEL
    assert decision.request_id == request_id
    assert gate.cancel_session(state.session_id) is False
    assert gate.resolve(request_id, HumanReviewDecision.approve()) is False


@pytest.mark.asyncio
async def test_second_request_for_same_session_is_rejected(observer):
    gate = HumanGate(timeout_seconds=5)
    state = _review_state()
    task, _ = await _request(gate, state, observer)

    with pytest.raises(HumanGateBusyError):
        await gate.request(state, "again", OrchestrationNotifier(send=observer.send))

    gate.cancel_session(state.session_id)
    await task


@pytest.mark.asyncio
async def test_sessions_are_independent(make_observer):
    gate = HumanGate(timeout_seconds=5)
    first_state, second_state = _review_state(), _review_state()
    first_observer, second_observer = make_observer(), make_observer()
    first_task, first_id = await _request(gate, first_state, first_observer)
    second_task, second_id = await _request(gate, second_state, second_observer)

    assert gate.pending_count() == 2
    gate.resolve(second_id, HumanReviewDecision.approve())
    assert (await second_task).decision == ReviewDecision.APPROVE
    assert not first_task.done()
    assert gate.pending_count(first_state.session_id) == 1

    gate.resolve(first_id, HumanReviewDecision.continue_())
    assert (await first_task).decision == ReviewDecision.CONTINUE


@pytest.mark.asyncio
async def test_cancelled_waiter_removes_request(observer):
    gate = HumanGate(timeout_seconds=5)
    state = _review_state()
    task, request_id = await _request(gate, state, observer)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert gate.get(request_id) is None
    assert state.awaiting_human is False
