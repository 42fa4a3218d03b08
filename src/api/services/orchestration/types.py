"""Data types for human-in-the-loop orchestration workflows."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .errors import InvalidDecisionError, WorkflowCompletedError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStage(str, Enum):
    """Coarse phase of one session's workflow."""

    USER_REQUEST = "UserRequest"
    AGENT_COLLABORATION = "AgentCollaboration"
    HUMAN_REVIEW = "HumanReview"
    COMPLETED = "Completed"


class ParticipantRole(str, Enum):
    """Role currently holding the floor in a workflow."""

    END_USER = "EndUser"
    AGENT_A = "AgentA"
    AGENT_B = "AgentB"
    HUMAN_REVIEWER = "HumanReviewer"


AGENT_ROLES = (ParticipantRole.AGENT_A, ParticipantRole.AGENT_B)

_STAGE_ROLES: Dict[WorkflowStage, FrozenSet[ParticipantRole]] = {
    WorkflowStage.USER_REQUEST: frozenset({ParticipantRole.END_USER}),
    WorkflowStage.AGENT_COLLABORATION: frozenset(AGENT_ROLES),
    WorkflowStage.HUMAN_REVIEW: frozenset({ParticipantRole.HUMAN_REVIEWER}),
    WorkflowStage.COMPLETED: frozenset({ParticipantRole.END_USER, ParticipantRole.HUMAN_REVIEWER}),
}

_DEFAULT_STAGE_ROLE: Dict[WorkflowStage, ParticipantRole] = {
    WorkflowStage.USER_REQUEST: ParticipantRole.END_USER,
    WorkflowStage.AGENT_COLLABORATION: ParticipantRole.AGENT_A,
    WorkflowStage.HUMAN_REVIEW: ParticipantRole.HUMAN_REVIEWER,
    WorkflowStage.COMPLETED: ParticipantRole.END_USER,
}


def is_role_allowed(stage: WorkflowStage, role: ParticipantRole) -> bool:
    return role in _STAGE_ROLES[stage]


class ReviewDecision(str, Enum):
    """Possible decisions a human reviewer can make."""

    APPROVE = "Approve"
    REVISE = "Revise"
    CONTINUE = "Continue"
    CANCEL = "Cancel"

    @classmethod
    def parse(cls, raw: Any) -> "ReviewDecision":
        """Parse a decision tag case-insensitively."""
        if isinstance(raw, ReviewDecision):
            return raw
        value = str(raw or "").strip().lower()
        for member in cls:
            if member.value.lower() == value:
                return member
        raise InvalidDecisionError(f"Unrecognized review decision: {raw!r}")


@dataclass(frozen=True)
class HumanReviewDecision:
    """A reviewer's resolution of one pending review."""

    decision: ReviewDecision
    feedback: Optional[str] = None
    request_id: Optional[str] = None
    timed_out: bool = False
    decided_at: datetime = field(default_factory=utc_now)

    @classmethod
    def approve(cls, feedback: Optional[str] = None) -> "HumanReviewDecision":
        return cls(ReviewDecision.APPROVE, feedback=feedback)

    @classmethod
    def revise(cls, feedback: str) -> "HumanReviewDecision":
        return cls(ReviewDecision.REVISE, feedback=feedback or "")

    @classmethod
    def continue_(cls, feedback: Optional[str] = None) -> "HumanReviewDecision":
        return cls(ReviewDecision.CONTINUE, feedback=feedback)

    @classmethod
    def cancel(cls, reason: Optional[str] = None) -> "HumanReviewDecision":
        return cls(ReviewDecision.CANCEL, feedback=reason)

    @classmethod
    def timeout(cls, request_id: str, note: str) -> "HumanReviewDecision":
        return cls(ReviewDecision.CONTINUE, feedback=note, request_id=request_id, timed_out=True)


@dataclass(frozen=True)
class TurnRecord:
    """A finalized transcript entry."""

    speaker: str
    content: str
    turn_index: int
    role: ParticipantRole
    iteration: int = 1
    failed: bool = False
    synthetic: bool = False


@dataclass
class WorkflowState:
    """State of one human-in-the-loop workflow, one per observer connection."""

    task: str
    participant_names: List[str]
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: Optional[str] = None
    team_id: str = ""
    stage: WorkflowStage = WorkflowStage.USER_REQUEST
    active_role: ParticipantRole = ParticipantRole.END_USER
    iteration: int = 1
    awaiting_human: bool = False
    consecutive_timeouts: int = 0
    transcript: List[TurnRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    last_activity: datetime = field(default_factory=utc_now)

    @property
    def is_completed(self) -> bool:
        return self.stage == WorkflowStage.COMPLETED

    def touch(self) -> None:
        self.last_activity = utc_now()

    def transition_to(self, stage: WorkflowStage, role: Optional[ParticipantRole] = None) -> None:
        """Move to a new stage, keeping the active role consistent with it."""
        if self.is_completed and stage != WorkflowStage.COMPLETED:
            raise WorkflowCompletedError(f"Workflow {self.session_id} is already completed")
        next_role = role
        if next_role is None:
            next_role = (
                self.active_role
                if is_role_allowed(stage, self.active_role)
                else _DEFAULT_STAGE_ROLE[stage]
            )
        if not is_role_allowed(stage, next_role):
            raise ValueError(f"Role {next_role.value} is not valid in stage {stage.value}")
        self.stage = stage
        self.active_role = next_role
        if stage != WorkflowStage.HUMAN_REVIEW:
            self.awaiting_human = False
        self.touch()

    def append_turn(
        self,
        *,
        speaker: str,
        content: str,
        role: ParticipantRole,
        failed: bool = False,
        synthetic: bool = False,
    ) -> TurnRecord:
        record = TurnRecord(
            speaker=speaker,
            content=content,
            turn_index=len(self.transcript),
            role=role,
            iteration=self.iteration,
            failed=failed,
            synthetic=synthetic,
        )
        self.transcript.append(record)
        self.touch()
        return record

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view sent with every stage update."""
        return {
            "session_id": self.session_id,
            "stage": self.stage.value,
            "active_role": self.active_role.value,
            "iteration": self.iteration,
            "awaiting_human": self.awaiting_human,
            "task": self.task,
            "team_id": self.team_id,
            "participant_names": list(self.participant_names),
            "turn_count": len(self.transcript),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }
