"""
Human-in-the-loop orchestration API endpoints

WebSocket transport for one observer per connection, plus read-only REST
views of teams and live sessions
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

import yaml

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..config import settings
from ..models.orchestration import InboundCommand, SessionStateResponse, TeamsResponse, TeamSummary
from ..services.agent_team_service import AgentTeamService
from ..services.orchestration import HumanGate, OrchestrationService, SchedulerSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orchestration", tags=["orchestration"])

_service: Optional[OrchestrationService] = None


def build_orchestration_service() -> OrchestrationService:
    """Build the process-wide service from application settings"""
    from src.agents.simple_llm import LLMCompletionGateway

    return OrchestrationService(
        gateway=LLMCompletionGateway(),
        team_service=AgentTeamService(config_path=settings.agent_teams_config_path),
        human_gate=HumanGate(timeout_seconds=settings.human_review_timeout_seconds),
        scheduler_settings=SchedulerSettings(
            round_turns=settings.round_turns,
            context_window=settings.context_window,
            review_summary_turns=settings.review_summary_turns,
            max_review_timeouts=settings.max_review_timeouts,
            turn_delay_seconds=settings.turn_delay_seconds,
        ),
        reset_grace_seconds=settings.reset_grace_seconds,
    )


def get_orchestration_service() -> OrchestrationService:
    """Dependency injection: get the shared orchestration service instance"""
    global _service
    if _service is None:
        _service = build_orchestration_service()
    return _service


async def shutdown_orchestration_service() -> None:
    global _service
    if _service is not None:
        await _service.shutdown()
        _service = None


class WebSocketObserver:
    """Serializes outbound JSON so concurrent notifications never interleave"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._lock = asyncio.Lock()

    async def send(self, payload: Dict[str, Any]) -> None:
        async with self._lock:
            await self.websocket.send_json(payload)


async def _dispatch(
    command: InboundCommand,
    connection_id: str,
    observer: WebSocketObserver,
    service: OrchestrationService,
) -> None:
    if command.type == "start_workflow":
        await service.start_workflow(connection_id, command.task or "", command.team, observer.send)
    elif command.type == "submit_decision":
        await service.submit_decision(
            connection_id,
            command.request_id or "",
            command.decision or "",
            command.feedback,
        )
    elif command.type == "reset":
        await service.reset_workflow(connection_id)
    elif command.type == "get_state":
        await service.send_workflow_state(connection_id, observer.send)
    elif command.type == "get_teams":
        await service.send_available_teams(connection_id, observer.send)


async def _report_bad_command(
    service: OrchestrationService,
    observer: WebSocketObserver,
    connection_id: str,
    error: Exception,
) -> None:
    logger.warning("Malformed command from %s: %s", connection_id, error)
    await service.report_error(connection_id, observer.send, f"Malformed command: {error}")


@router.websocket("/ws")
async def orchestration_socket(
    websocket: WebSocket,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    """
    Observer connection for one workflow at a time

    Inbound JSON commands: start_workflow, submit_decision, reset,
    get_state, get_teams. Outbound: workflow_state, turn,
    agent_configurations, available_teams, decision_rejected.
    """
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    observer = WebSocketObserver(websocket)
    logger.info("Observer connected: %s", connection_id)

    try:
        await service.send_available_teams(connection_id, observer.send)
        while True:
            try:
                data = await websocket.receive_json()
                command = InboundCommand.model_validate(data)
            except ValidationError as e:
                await _report_bad_command(service, observer, connection_id, e)
                continue
            except ValueError as e:
                # undecodable JSON frame
                await _report_bad_command(service, observer, connection_id, e)
                continue
            await _dispatch(command, connection_id, observer, service)
    except WebSocketDisconnect as e:
        logger.info("Observer disconnected: %s (code: %s)", connection_id, e.code)
    finally:
        await service.cleanup_connection(connection_id)


@router.get("/teams", response_model=TeamsResponse)
async def list_teams(service: OrchestrationService = Depends(get_orchestration_service)):
    """List selectable agent teams"""
    try:
        config = await service.team_service.load_config()
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise HTTPException(status_code=500, detail=f"Agent teams configuration could not be loaded: {e}")
    return TeamsResponse(
        default=config.default,
        teams=[
            TeamSummary(
                id=team.id,
                display_name=team.display_name,
                agents=[agent.name for agent in team.agents],
            )
            for team in config.teams
            if team.enabled
        ],
    )


@router.get("/sessions/{session_id}", response_model=SessionStateResponse)
async def get_session_state(
    session_id: str,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    """
    Get a live session's state and transcript

    Args:
        session_id: Session ID reported in workflow_state messages
    """
    state = service.get_session(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return SessionStateResponse(
        **state.snapshot(),
        transcript=[
            {
                "speaker": record.speaker,
                "content": record.content,
                "role": record.role.value,
                "iteration": record.iteration,
                "failed": record.failed,
                "synthetic": record.synthetic,
            }
            for record in state.transcript
        ],
    )
