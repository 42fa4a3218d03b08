"""Unit tests for the connection-facing orchestration service."""

import asyncio

import pytest

from src.api.services.agent_team_service import AgentTeamService
from src.api.services.orchestration.base import SchedulerSettings
from src.api.services.orchestration.human_gate import HumanGate
from src.api.services.orchestration.service import OrchestrationService
from src.api.services.orchestration.turn_scheduler import TurnScheduler
from src.api.services.orchestration.types import WorkflowStage


def _service(gateway, teams_config_path, *, timeout=5.0, settings=None):
    return OrchestrationService(
        gateway=gateway,
        team_service=AgentTeamService(config_path=teams_config_path),
        human_gate=HumanGate(timeout_seconds=timeout),
        scheduler_settings=settings,
        reset_grace_seconds=1,
    )


async def _review_request(observer, seen=0):
    await observer.wait_for(
        lambda m: m.get("message_kind") == "human-input-request" and len(observer.review_requests()) > seen
    )
    return observer.review_requests()[seen]["request_id"]


async def _wait_completed(observer):
    return await observer.wait_for(
        lambda m: m.get("type") == "workflow_state" and m.get("stage") == "Completed"
    )


@pytest.mark.asyncio
async def test_start_workflow_announces_session(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    session_id = await service.start_workflow("conn-1", "Write a slogan", "", observer.send)

    assert session_id is not None
    first_state = observer.of_type("workflow_state")[0]
    assert first_state["stage"] == "UserRequest"
    assert first_state["session_id"] == session_id
    assert observer.system("start")
    configs = observer.of_type("agent_configurations")[0]
    assert [agent["name"] for agent in configs["agents"]] == ["CreativeAgent", "AnalyticalAgent"]
    assert configs["agents"][0]["avatar_emoji"] == "🎨"

    await service.cleanup_connection("conn-1")


@pytest.mark.asyncio
async def test_full_workflow_approve(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    session_id = await service.start_workflow("conn-1", "Write a slogan", "duo", observer.send)

    request_id = await _review_request(observer)
    assert service.get_workflow_state("conn-1")["awaiting_human"] is True
    assert await service.submit_decision("conn-1", request_id, "approve") is True
    await _wait_completed(observer)

    state = service.get_session(session_id)
    assert state.stage == WorkflowStage.COMPLETED
    assert len(state.transcript) == 4
    seqs = [m["seq"] for m in observer.messages]
    assert seqs == sorted(seqs) and len(set(seqs)) == len(seqs)

    await service.cleanup_connection("conn-1")
    assert service.get_session(session_id) is None


@pytest.mark.asyncio
async def test_revise_with_feedback_over_service(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    session_id = await service.start_workflow("conn-1", "Write a slogan", "duo", observer.send)

    first = await _review_request(observer)
    assert await service.submit_decision("conn-1", first, "Revise", "more humour") is True
    second = await _review_request(observer, seen=1)

    state = service.get_session(session_id)
    assert state.iteration == 2
    assert state.transcript[4].content == "REVISION NEEDED: more humour"

    await service.submit_decision("conn-1", second, "CANCEL")
    await _wait_completed(observer)
    await service.cleanup_connection("conn-1")


@pytest.mark.asyncio
async def test_unknown_team_is_a_configuration_error(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    assert await service.start_workflow("conn-1", "task", "nope", observer.send) is None
    assert await service.start_workflow("conn-1", "task", "hidden", observer.send) is None

    assert len(observer.system("error")) == 2
    assert observer.of_type("workflow_state") == []
    assert gateway.calls == []
    assert len(service.registry) == 0


@pytest.mark.asyncio
async def test_one_agent_team_is_rejected(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    assert await service.start_workflow("conn-1", "task", "solo", observer.send) is None
    assert "at least 2 agents" in observer.system("error")[0]["fragment"]


@pytest.mark.asyncio
async def test_empty_task_is_rejected(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    assert await service.start_workflow("conn-1", "  ", "duo", observer.send) is None
    assert observer.system("error")
    assert len(service.registry) == 0


@pytest.mark.asyncio
async def test_invalid_decision_tag_is_rejected(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    await service.start_workflow("conn-1", "task", "duo", observer.send)
    request_id = await _review_request(observer)

    assert await service.submit_decision("conn-1", request_id, "maybe") is False
    rejected = observer.of_type("decision_rejected")[0]
    assert rejected["request_id"] == request_id
    assert service.get_workflow_state("conn-1")["awaiting_human"] is True

    await service.cleanup_connection("conn-1")


@pytest.mark.asyncio
async def test_unknown_request_id_is_rejected(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    await service.start_workflow("conn-1", "task", "duo", observer.send)
    await _review_request(observer)

    assert await service.submit_decision("conn-1", "not-a-request", "approve") is False
    assert len(observer.of_type("decision_rejected")) == 1
    await service.cleanup_connection("conn-1")


@pytest.mark.asyncio
async def test_decision_without_session_is_noop(gateway, teams_config_path):
    service = _service(gateway, teams_config_path)
    assert await service.submit_decision("ghost", "req", "approve") is False
    assert await service.reset_workflow("ghost") is False
    assert service.get_workflow_state("ghost") is None
    await service.cleanup_connection("ghost")


@pytest.mark.asyncio
async def test_other_connection_cannot_answer_review(gateway, make_observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    owner, intruder = make_observer(), make_observer()
    await service.start_workflow("conn-1", "task", "duo", owner.send)
    await service.start_workflow("conn-2", "other task", "duo", intruder.send)
    request_id = await _review_request(owner)

    assert await service.submit_decision("conn-2", request_id, "approve") is False
    assert service.get_workflow_state("conn-1")["stage"] == "HumanReview"

    await service.cleanup_connection("conn-1")
    await service.cleanup_connection("conn-2")


@pytest.mark.asyncio
async def test_second_start_replaces_first_session(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    first = await service.start_workflow("conn-1", "first task", "duo", observer.send)
    first_request = await _review_request(observer)

    second = await service.start_workflow("conn-1", "second task", "duo", observer.send)

    assert second != first
    assert service.get_session(first) is None
    assert service.get_workflow_state("conn-1")["task"] == "second task"
    assert await service.submit_decision("conn-1", first_request, "approve") is False
    await service.cleanup_connection("conn-1")


@pytest.mark.asyncio
async def test_reset_during_review_stops_workflow(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    session_id = await service.start_workflow("conn-1", "task", "duo", observer.send)
    await _review_request(observer)
    state = service.get_session(session_id)

    assert await service.reset_workflow("conn-1") is True

    assert state.is_completed
    assert observer.system("reset")
    assert service.get_workflow_state("conn-1") is None
    assert service.human_gate.pending_count() == 0
    assert len(gateway.calls) == 4


@pytest.mark.asyncio
async def test_disconnect_during_review_releases_everything(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path, timeout=30)
    session_id = await service.start_workflow("conn-1", "task", "duo", observer.send)
    await _review_request(observer)
    state = service.get_session(session_id)
    task = service.registry.get_handle(session_id).task

    await service.cleanup_connection("conn-1")

    assert state.is_completed
    assert service.human_gate.pending_count() == 0
    assert task.done()
    assert service.get_session(session_id) is None
    assert len(gateway.calls) == 4


@pytest.mark.asyncio
async def test_reset_racing_review_gate_is_honoured(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path, timeout=30)
    resets = []

    async def send(payload):
        await observer.send(payload)
        if not resets and payload.get("type") == "workflow_state" and payload.get("stage") == "HumanReview":
            resets.append(asyncio.create_task(service.reset_workflow("conn-1")))
            await asyncio.sleep(0)

    loop = asyncio.get_running_loop()
    started = loop.time()
    await service.start_workflow("conn-1", "task", "duo", send)
    await observer.wait_for(lambda m: m.get("sub_kind") == "reset")

    assert await resets[0] is True
    # Finished well inside the 1s grace period, so the task was never force-cancelled.
    assert loop.time() - started < 0.9
    assert observer.review_requests() == []
    assert len(observer.system("cancellation")) == 1
    assert service.human_gate.pending_count() == 0
    assert observer.of_type("workflow_state")[-1]["stage"] == "Completed"


@pytest.mark.asyncio
async def test_disconnect_mid_turn_stops_gateway_consumption(make_gateway, observer, teams_config_path):
    started = asyncio.Event()

    def script(agent, call):
        started.set()
        return ["a "] * 1000

    gateway = make_gateway(script=script)
    service = _service(gateway, teams_config_path)
    session_id = await service.start_workflow("conn-1", "task", "duo", observer.send)
    await asyncio.wait_for(started.wait(), 1)

    await service.cleanup_connection("conn-1")

    assert service.get_session(session_id) is None
    assert len(gateway.calls) == 1
    assert len(service.registry) == 0


@pytest.mark.asyncio
async def test_scheduler_crash_forces_completion(gateway, observer, teams_config_path):
    class CrashingScheduler(TurnScheduler):
        async def run(self):
            raise KeyError("boom")

    service = OrchestrationService(
        gateway=gateway,
        team_service=AgentTeamService(config_path=teams_config_path),
        scheduler_factory=CrashingScheduler,
    )
    session_id = await service.start_workflow("conn-1", "task", "duo", observer.send)
    await _wait_completed(observer)

    assert service.get_session(session_id).is_completed
    assert "boom" in observer.system("error")[0]["fragment"]
    await service.cleanup_connection("conn-1")


@pytest.mark.asyncio
async def test_timeouts_end_session_over_service(gateway, observer, teams_config_path):
    service = _service(
        gateway,
        teams_config_path,
        timeout=0.01,
        settings=SchedulerSettings(round_turns=2, max_review_timeouts=3),
    )
    await service.start_workflow("conn-1", "task", "duo", observer.send)
    await _wait_completed(observer)

    assert len(observer.system("timeout")) == 3
    assert len(gateway.calls) == 6
    await service.cleanup_connection("conn-1")


@pytest.mark.asyncio
async def test_timeouts_keep_session_live_without_cap(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path, timeout=0.01, settings=SchedulerSettings(round_turns=2))
    session_id = await service.start_workflow("conn-1", "task", "duo", observer.send)
    await observer.wait_for(lambda m: len(observer.system("timeout")) >= 3)

    assert not service.get_session(session_id).is_completed
    assert observer.system("cancellation") == []
    await service.cleanup_connection("conn-1")


@pytest.mark.asyncio
async def test_available_teams_lists_enabled_teams(gateway, observer, teams_config_path):
    service = _service(gateway, teams_config_path)
    assert await service.get_available_teams() == {"duo": "Creative + Analytical", "solo": "Solo"}

    await service.send_available_teams("conn-1", observer.send)
    assert observer.of_type("available_teams")[0]["teams"]["duo"] == "Creative + Analytical"
