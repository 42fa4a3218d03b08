"""Observer notification schema and emitter for orchestration workflows."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .types import ParticipantRole, WorkflowState

logger = logging.getLogger(__name__)

ObserverSend = Callable[[Dict[str, Any]], Awaitable[None]]

SYSTEM_SPEAKER = "System"


class MessageKind(str, Enum):
    """Kind of content carried by one turn notification."""

    AGENT = "agent"
    SYSTEM = "system"
    HUMAN_INPUT_REQUEST = "human-input-request"


class _NotificationBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str
    seq: int = Field(ge=1)
    ts: int = Field(ge=0)


class WorkflowStateNotification(_NotificationBase):
    """Stage update sent after every workflow transition."""

    type: str = "workflow_state"
    session_id: str
    stage: str
    active_role: str
    iteration: int = Field(ge=1)
    awaiting_human: bool = False
    task: Optional[str] = None
    team_id: Optional[str] = None
    participant_names: List[str] = Field(default_factory=list)
    turn_count: int = 0
    created_at: Optional[str] = None
    last_activity: Optional[str] = None


class TurnNotification(_NotificationBase):
    """Turn content: live agent fragments, system notices, review requests."""

    type: str = "turn"
    turn_content_id: str = Field(min_length=1)
    session_id: Optional[str] = None
    speaker: str
    role: Optional[str] = None
    message_kind: MessageKind
    fragment: str = ""
    is_complete: bool = False
    iteration: Optional[int] = None
    stage: Optional[str] = None
    sub_kind: Optional[str] = None
    request_id: Optional[str] = None


class AgentConfigurationsNotification(_NotificationBase):
    type: str = "agent_configurations"
    session_id: str
    agents: List[Dict[str, Any]]


class AvailableTeamsNotification(_NotificationBase):
    type: str = "available_teams"
    teams: Dict[str, str]


class DecisionRejectedNotification(_NotificationBase):
    type: str = "decision_rejected"
    request_id: Optional[str] = None
    reason: str


def now_ms() -> int:
    """Return current timestamp in milliseconds."""

    return int(time.time() * 1000)


def new_turn_content_id() -> str:
    return str(uuid.uuid4())


@dataclass
class OrchestrationNotifier:
    """Build notifications with stable sequencing and deliver them to one observer.

    Delivery failures (closed socket, vanished observer) are logged and
    swallowed so a winding-down scheduler never crashes on a dead connection.
    """

    send: ObserverSend
    connection_id: str = ""
    _seq: int = 0

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    async def deliver(self, notification: _NotificationBase) -> Dict[str, Any]:
        payload = notification.model_dump(mode="json", exclude_none=True)
        try:
            await self.send(payload)
        except Exception as e:
            logger.warning(
                "Failed to deliver %s notification to %s: %s",
                payload.get("type"),
                self.connection_id or "observer",
                e,
            )
        return payload

    async def stage_update(self, state: WorkflowState) -> Dict[str, Any]:
        return await self.deliver(
            WorkflowStateNotification(seq=self._next_seq(), ts=now_ms(), **state.snapshot())
        )

    async def turn(
        self,
        *,
        turn_content_id: str,
        speaker: str,
        message_kind: MessageKind,
        fragment: str = "",
        is_complete: bool = False,
        state: Optional[WorkflowState] = None,
        role: Optional[ParticipantRole] = None,
        sub_kind: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.deliver(
            TurnNotification(
                seq=self._next_seq(),
                ts=now_ms(),
                turn_content_id=turn_content_id,
                session_id=state.session_id if state else None,
                speaker=speaker,
                role=role.value if role else None,
                message_kind=message_kind,
                fragment=fragment,
                is_complete=is_complete,
                iteration=state.iteration if state else None,
                stage=state.stage.value if state else None,
                sub_kind=sub_kind,
                request_id=request_id,
            )
        )

    async def turn_started(
        self, turn_content_id: str, speaker: str, *, state: Optional[WorkflowState] = None,
        role: Optional[ParticipantRole] = None,
    ) -> Dict[str, Any]:
        return await self.turn(
            turn_content_id=turn_content_id,
            speaker=speaker,
            message_kind=MessageKind.AGENT,
            state=state,
            role=role,
        )

    async def fragment(
        self, turn_content_id: str, speaker: str, text: str, *, state: Optional[WorkflowState] = None,
        role: Optional[ParticipantRole] = None,
    ) -> Dict[str, Any]:
        return await self.turn(
            turn_content_id=turn_content_id,
            speaker=speaker,
            message_kind=MessageKind.AGENT,
            fragment=text,
            state=state,
            role=role,
        )

    async def turn_complete(
        self, turn_content_id: str, speaker: str, *, state: Optional[WorkflowState] = None,
        role: Optional[ParticipantRole] = None,
    ) -> Dict[str, Any]:
        return await self.turn(
            turn_content_id=turn_content_id,
            speaker=speaker,
            message_kind=MessageKind.AGENT,
            is_complete=True,
            state=state,
            role=role,
        )

    async def system(
        self,
        content: str,
        sub_kind: str = "status",
        *,
        state: Optional[WorkflowState] = None,
    ) -> Dict[str, Any]:
        return await self.turn(
            turn_content_id=new_turn_content_id(),
            speaker=SYSTEM_SPEAKER,
            message_kind=MessageKind.SYSTEM,
            fragment=content,
            is_complete=True,
            state=state,
            sub_kind=sub_kind,
        )

    async def human_input_request(
        self, state: WorkflowState, request_id: str, prompt: str
    ) -> Dict[str, Any]:
        return await self.turn(
            turn_content_id=new_turn_content_id(),
            speaker=SYSTEM_SPEAKER,
            message_kind=MessageKind.HUMAN_INPUT_REQUEST,
            fragment=prompt,
            is_complete=True,
            state=state,
            role=ParticipantRole.HUMAN_REVIEWER,
            request_id=request_id,
        )

    async def agent_configurations(self, session_id: str, agents: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self.deliver(
            AgentConfigurationsNotification(
                seq=self._next_seq(), ts=now_ms(), session_id=session_id, agents=agents
            )
        )

    async def available_teams(self, teams: Dict[str, str]) -> Dict[str, Any]:
        return await self.deliver(
            AvailableTeamsNotification(seq=self._next_seq(), ts=now_ms(), teams=teams)
        )

    async def decision_rejected(self, request_id: Optional[str], reason: str) -> Dict[str, Any]:
        return await self.deliver(
            DecisionRejectedNotification(
                seq=self._next_seq(), ts=now_ms(), request_id=request_id, reason=reason
            )
        )
