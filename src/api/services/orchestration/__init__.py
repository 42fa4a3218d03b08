"""Human-in-the-loop orchestration primitives."""

from .base import OrchestrationCancelToken, SchedulerSettings
from .context_builder import TurnContext, build_review_prompt, build_role_instructions, build_turn_context
from .errors import (
    ConfigurationError,
    ContextBuildError,
    HumanGateBusyError,
    InvalidDecisionError,
    OrchestrationError,
    WorkflowCompletedError,
)
from .events import MessageKind, OrchestrationNotifier
from .human_gate import HumanGate, PendingDecisionRequest
from .service import OrchestrationService
from .session_registry import SessionHandle, SessionRegistry
from .streaming_relay import RelayResult, StreamingRelay
from .turn_scheduler import TurnScheduler
from .types import (
    HumanReviewDecision,
    ParticipantRole,
    ReviewDecision,
    TurnRecord,
    WorkflowStage,
    WorkflowState,
)

__all__ = [
    "OrchestrationCancelToken",
    "SchedulerSettings",
    "TurnContext",
    "build_review_prompt",
    "build_role_instructions",
    "build_turn_context",
    "ConfigurationError",
    "ContextBuildError",
    "HumanGateBusyError",
    "InvalidDecisionError",
    "OrchestrationError",
    "WorkflowCompletedError",
    "MessageKind",
    "OrchestrationNotifier",
    "HumanGate",
    "PendingDecisionRequest",
    "OrchestrationService",
    "SessionHandle",
    "SessionRegistry",
    "RelayResult",
    "StreamingRelay",
    "TurnScheduler",
    "HumanReviewDecision",
    "ParticipantRole",
    "ReviewDecision",
    "TurnRecord",
    "WorkflowStage",
    "WorkflowState",
]
