"""Connection-facing facade that wires teams, sessions, scheduler and gate together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import yaml

from src.api.models.agent_team import AgentTeam
from src.api.services.agent_team_service import AgentTeamService

from .base import SchedulerSettings
from .errors import ConfigurationError, InvalidDecisionError
from .events import ObserverSend, OrchestrationNotifier
from .human_gate import HumanGate
from .session_registry import DEFAULT_RESET_GRACE_SECONDS, SessionHandle, SessionRegistry
from .turn_scheduler import TurnScheduler
from .types import HumanReviewDecision, ParticipantRole, ReviewDecision, WorkflowStage, WorkflowState

logger = logging.getLogger(__name__)

SchedulerFactory = Callable[..., TurnScheduler]


class OrchestrationService:
    """One instance per process; every method is scoped by observer connection id."""

    def __init__(
        self,
        *,
        gateway: Any,
        team_service: Optional[AgentTeamService] = None,
        human_gate: Optional[HumanGate] = None,
        registry: Optional[SessionRegistry] = None,
        scheduler_settings: Optional[SchedulerSettings] = None,
        reset_grace_seconds: float = DEFAULT_RESET_GRACE_SECONDS,
        scheduler_factory: SchedulerFactory = TurnScheduler,
    ):
        self.gateway = gateway
        self.team_service = team_service or AgentTeamService()
        self.human_gate = human_gate or HumanGate()
        self.registry = registry or SessionRegistry(
            self.human_gate,
            reset_grace_seconds=reset_grace_seconds,
        )
        self.scheduler_settings = scheduler_settings or SchedulerSettings()
        self.scheduler_factory = scheduler_factory
        self._notifiers: Dict[str, OrchestrationNotifier] = {}

    def _notifier(self, connection_id: str, send: Optional[ObserverSend] = None) -> Optional[OrchestrationNotifier]:
        notifier = self._notifiers.get(connection_id)
        if notifier is None and send is not None:
            notifier = OrchestrationNotifier(send=send, connection_id=connection_id)
            self._notifiers[connection_id] = notifier
        elif notifier is not None and send is not None and notifier.send is not send:
            notifier.send = send
        return notifier

    def _handle_for(self, connection_id: str) -> Optional[SessionHandle]:
        session_id = self.registry.session_for_owner(connection_id)
        if session_id is None:
            return None
        return self.registry.get_handle(session_id)

    async def start_workflow(
        self,
        connection_id: str,
        task: str,
        team_id: Optional[str],
        send: ObserverSend,
    ) -> Optional[str]:
        """Start a new workflow for a connection, replacing any previous one."""
        notifier = self._notifier(connection_id, send)

        try:
            team = await self._resolve_team(team_id)
            if not (task or "").strip():
                raise ConfigurationError("Task must not be empty")
        except ConfigurationError as e:
            logger.warning("Rejected workflow start on %s: %s", connection_id, e)
            await notifier.system(f"Cannot start workflow: {e}", "error")
            return None

        previous = self.registry.session_for_owner(connection_id)
        if previous is not None:
            logger.info("Replacing session %s on connection %s", previous, connection_id)
            await self.registry.reset(previous, reason="Replaced by a new workflow")

        agents = team.agents[:2]
        try:
            session_id = self.registry.create(
                task,
                [agent.name for agent in agents],
                owner_id=connection_id,
                team_id=team.id,
            )
        except ConfigurationError as e:
            logger.warning("Rejected workflow start on %s: %s", connection_id, e)
            await notifier.system(f"Cannot start workflow: {e}", "error")
            return None

        handle = self.registry.get_handle(session_id)
        state = handle.state
        scheduler = self.scheduler_factory(
            state=state,
            agents=agents,
            gateway=self.gateway,
            notifier=notifier,
            human_gate=self.human_gate,
            settings=self.scheduler_settings,
            cancel_token=handle.cancel_token,
        )

        await notifier.stage_update(state)
        await notifier.system(
            f"Starting workflow with {team.display_name}: {state.task}",
            "start",
            state=state,
        )
        await notifier.agent_configurations(
            session_id,
            [agent.presentation() for agent in agents],
        )

        task_handle = asyncio.create_task(
            self._run_scheduler(scheduler, notifier),
            name=f"orchestration-{session_id}",
        )
        self.registry.attach(session_id, task_handle)
        return session_id

    async def _resolve_team(self, team_id: Optional[str]) -> AgentTeam:
        try:
            team = await self.team_service.get_team(team_id)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Agent teams configuration could not be loaded: {e}") from e
        if team is None:
            raise ConfigurationError(f"Unknown agent team: {team_id!r}")
        if len(team.agents) < 2:
            raise ConfigurationError(
                f"Team {team.id!r} needs at least 2 agents, got {len(team.agents)}"
            )
        return team

    async def _run_scheduler(self, scheduler: TurnScheduler, notifier: OrchestrationNotifier) -> WorkflowState:
        state = scheduler.state
        try:
            return await scheduler.run()
        except asyncio.CancelledError:
            logger.info("Scheduler task for session %s cancelled", state.session_id)
            raise
        except Exception as e:
            logger.exception("Workflow %s crashed", state.session_id)
            if not state.is_completed:
                state.transition_to(WorkflowStage.COMPLETED, ParticipantRole.END_USER)
            await notifier.system(f"Workflow error: {e}", "error", state=state)
            await notifier.stage_update(state)
            return state

    async def submit_decision(
        self,
        connection_id: str,
        request_id: str,
        decision: str,
        feedback: Optional[str] = None,
    ) -> bool:
        """Route a reviewer decision to this connection's pending request."""
        notifier = self._notifier(connection_id)
        handle = self._handle_for(connection_id)
        if handle is None:
            logger.warning("Decision %s from %s without an active session", request_id, connection_id)
            await self._reject(notifier, request_id, "No active workflow")
            return False

        try:
            tag = ReviewDecision.parse(decision)
        except InvalidDecisionError as e:
            logger.warning("Invalid decision from %s: %s", connection_id, e)
            await self._reject(notifier, request_id, str(e))
            return False

        review = HumanReviewDecision(
            tag,
            feedback=(feedback or "") if tag == ReviewDecision.REVISE else feedback,
            request_id=request_id,
        )
        resolved = self.human_gate.resolve(request_id, review, session_id=handle.state.session_id)
        if not resolved:
            await self._reject(notifier, request_id, "Unknown, expired or already answered request")
            return False
        logger.info(
            "Session %s received %s decision for %s",
            handle.state.session_id,
            tag.value,
            request_id,
        )
        return True

    @staticmethod
    async def _reject(notifier: Optional[OrchestrationNotifier], request_id: Optional[str], reason: str) -> None:
        if notifier is not None:
            await notifier.decision_rejected(request_id, reason)

    async def reset_workflow(self, connection_id: str) -> bool:
        """Stop this connection's workflow; the connection stays usable."""
        handle = self._handle_for(connection_id)
        if handle is None:
            return False
        state = handle.state
        removed = await self.registry.reset(state.session_id, reason="Session reset")
        notifier = self._notifier(connection_id)
        if removed and notifier is not None:
            await notifier.system("Workflow reset.", "reset", state=state)
            await notifier.stage_update(state)
        return removed

    async def cleanup_connection(self, connection_id: str) -> None:
        """Tear down everything owned by a disconnected observer."""
        self._notifiers.pop(connection_id, None)
        session_id = self.registry.session_for_owner(connection_id)
        if session_id is not None:
            await self.registry.cleanup(session_id)

    def get_workflow_state(self, connection_id: str) -> Optional[Dict[str, Any]]:
        handle = self._handle_for(connection_id)
        return handle.state.snapshot() if handle else None

    def get_session(self, session_id: str) -> Optional[WorkflowState]:
        return self.registry.get(session_id)

    async def send_workflow_state(self, connection_id: str, send: ObserverSend) -> None:
        notifier = self._notifier(connection_id, send)
        handle = self._handle_for(connection_id)
        if handle is None:
            await notifier.system("No active workflow.", "status")
            return
        await notifier.stage_update(handle.state)

    async def report_error(self, connection_id: str, send: ObserverSend, message: str) -> None:
        """Send a system error to a connection without touching its workflow."""
        notifier = self._notifier(connection_id, send)
        handle = self._handle_for(connection_id)
        await notifier.system(message, "error", state=handle.state if handle else None)

    async def get_available_teams(self) -> Dict[str, str]:
        return await self.team_service.list_teams()

    async def send_available_teams(self, connection_id: str, send: ObserverSend) -> None:
        notifier = self._notifier(connection_id, send)
        await notifier.available_teams(await self.get_available_teams())

    async def shutdown(self) -> None:
        """Reset every live session; used on application shutdown."""
        for session_id in self.registry.session_ids():
            await self.registry.reset(session_id, reason="Server shutting down")
        self._notifiers.clear()
