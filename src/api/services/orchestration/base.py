"""Shared contracts for human-in-the-loop orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .context_builder import DEFAULT_CONTEXT_WINDOW, DEFAULT_REVIEW_TAIL

DEFAULT_ROUND_TURNS = 4
DEFAULT_HUMAN_REVIEW_TIMEOUT_SECONDS = 600.0


@dataclass(frozen=True)
class SchedulerSettings:
    """Knobs for one session's round-robin collaboration."""

    round_turns: int = DEFAULT_ROUND_TURNS
    context_window: int = DEFAULT_CONTEXT_WINDOW
    review_summary_turns: int = DEFAULT_REVIEW_TAIL
    # None keeps a session live through any number of review timeouts.
    max_review_timeouts: Optional[int] = None
    turn_delay_seconds: float = 0.0


@dataclass
class OrchestrationCancelToken:
    """Cooperative cancellation token shared by a session's scheduler and relay."""

    is_cancelled: bool = False
    reason: str = "cancelled"

    def cancel(self, reason: Optional[str] = None) -> None:
        """Mark the token as cancelled with an optional reason."""
        self.is_cancelled = True
        if reason:
            self.reason = str(reason).strip() or self.reason


def is_cancelled(cancel_token: Optional[OrchestrationCancelToken]) -> bool:
    """Return True when cooperative cancellation was requested."""
    return bool(cancel_token and cancel_token.is_cancelled)
