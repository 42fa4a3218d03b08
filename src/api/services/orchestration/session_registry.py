"""Ownership-scoped registry of per-connection workflow sessions."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .base import OrchestrationCancelToken
from .errors import ConfigurationError
from .human_gate import HumanGate
from .types import ParticipantRole, WorkflowStage, WorkflowState

logger = logging.getLogger(__name__)

DEFAULT_RESET_GRACE_SECONDS = 2.0


@dataclass
class SessionHandle:
    """Registry entry: the session state plus what is needed to stop it."""

    state: WorkflowState
    cancel_token: OrchestrationCancelToken = field(default_factory=OrchestrationCancelToken)
    task: Optional["asyncio.Task[WorkflowState]"] = None


class SessionRegistry:
    """Creates, looks up and tears down sessions; no state is shared between them."""

    def __init__(
        self,
        human_gate: HumanGate,
        *,
        reset_grace_seconds: float = DEFAULT_RESET_GRACE_SECONDS,
    ):
        self.human_gate = human_gate
        self.reset_grace_seconds = float(reset_grace_seconds)
        self._sessions: Dict[str, SessionHandle] = {}
        self._owners: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def create(
        self,
        task: str,
        agent_names: Sequence[str],
        *,
        owner_id: Optional[str] = None,
        team_id: str = "",
    ) -> str:
        """Validate inputs and register a new session; returns its id."""
        task_text = (task or "").strip()
        if not task_text:
            raise ConfigurationError("Task must not be empty")
        names = [str(name) for name in agent_names if str(name or "").strip()]
        if len(names) < 2:
            raise ConfigurationError(
                f"Round-robin collaboration needs at least 2 agents, got {len(names)}"
            )
        if owner_id is not None and owner_id in self._owners:
            raise ConfigurationError(f"Connection {owner_id} already owns an active session")

        state = WorkflowState(
            task=task_text,
            participant_names=names,
            owner_id=owner_id,
            team_id=team_id,
        )
        self._sessions[state.session_id] = SessionHandle(state=state)
        if owner_id is not None:
            self._owners[owner_id] = state.session_id
        logger.info(
            "Created session %s for %s with agents %s",
            state.session_id,
            owner_id or "anonymous owner",
            names,
        )
        return state.session_id

    def get(self, session_id: str) -> Optional[WorkflowState]:
        handle = self._sessions.get(session_id)
        return handle.state if handle else None

    def get_handle(self, session_id: str) -> Optional[SessionHandle]:
        return self._sessions.get(session_id)

    def session_for_owner(self, owner_id: str) -> Optional[str]:
        return self._owners.get(owner_id)

    def attach(self, session_id: str, task: "asyncio.Task[WorkflowState]") -> bool:
        """Register the scheduler task driving a session."""
        handle = self._sessions.get(session_id)
        if handle is None:
            return False
        handle.task = task
        return True

    async def reset(self, session_id: str, reason: str = "Session reset") -> bool:
        """Stop and remove a session. Idempotent: False when nothing was removed."""
        handle = self._sessions.pop(session_id, None)
        if handle is None:
            return False
        owner_id = handle.state.owner_id
        if owner_id is not None and self._owners.get(owner_id) == session_id:
            self._owners.pop(owner_id, None)

        handle.cancel_token.cancel(reason)
        self.human_gate.cancel_session(session_id, reason)

        task = handle.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            done, _ = await asyncio.wait({task}, timeout=self.reset_grace_seconds)
            if not done:
                logger.warning(
                    "Scheduler for session %s did not stop within %ss; cancelling",
                    session_id,
                    self.reset_grace_seconds,
                )
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        state = handle.state
        if not state.is_completed:
            state.transition_to(WorkflowStage.COMPLETED, ParticipantRole.END_USER)
        logger.info("Reset session %s (%s)", session_id, reason)
        return True

    async def cleanup(self, session_id: str) -> bool:
        """Disconnect-time teardown; same semantics as reset."""
        return await self.reset(session_id, reason="Observer disconnected")
