"""Single-resolution decision slots that suspend a workflow until a reviewer answers."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, Optional

from .base import DEFAULT_HUMAN_REVIEW_TIMEOUT_SECONDS
from .errors import HumanGateBusyError
from .events import OrchestrationNotifier
from .types import HumanReviewDecision, WorkflowState, utc_now

logger = logging.getLogger(__name__)


@dataclass
class PendingDecisionRequest:
    """One outstanding review request; resolves exactly once."""

    request_id: str
    session_id: str
    future: "asyncio.Future[HumanReviewDecision]"
    created_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.future.done()

    def try_resolve(self, decision: HumanReviewDecision) -> bool:
        """First writer wins; later attempts report False and change nothing."""
        if self.future.done():
            return False
        self.future.set_result(decision)
        return True


class HumanGate:
    """Registry of pending decision requests, at most one per session."""

    def __init__(self, timeout_seconds: float = DEFAULT_HUMAN_REVIEW_TIMEOUT_SECONDS):
        self.timeout_seconds = float(timeout_seconds)
        self._pending: Dict[str, PendingDecisionRequest] = {}
        self._session_requests: Dict[str, str] = {}

    def pending_for(self, session_id: str) -> Optional[PendingDecisionRequest]:
        request_id = self._session_requests.get(session_id)
        if request_id is None:
            return None
        return self._pending.get(request_id)

    def get(self, request_id: str) -> Optional[PendingDecisionRequest]:
        return self._pending.get(request_id)

    def pending_count(self, session_id: Optional[str] = None) -> int:
        if session_id is None:
            return len(self._pending)
        return sum(1 for pending in self._pending.values() if pending.session_id == session_id)

    def _install(self, session_id: str) -> PendingDecisionRequest:
        if session_id in self._session_requests:
            raise HumanGateBusyError(f"Session {session_id} already has a pending decision request")
        created_at = utc_now()
        pending = PendingDecisionRequest(
            request_id=str(uuid.uuid4()),
            session_id=session_id,
            future=asyncio.get_running_loop().create_future(),
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=self.timeout_seconds),
        )
        self._pending[pending.request_id] = pending
        self._session_requests[session_id] = pending.request_id
        return pending

    def _remove(self, pending: PendingDecisionRequest) -> None:
        self._pending.pop(pending.request_id, None)
        if self._session_requests.get(pending.session_id) == pending.request_id:
            self._session_requests.pop(pending.session_id, None)

    async def request(
        self,
        state: WorkflowState,
        prompt: str,
        notifier: OrchestrationNotifier,
    ) -> HumanReviewDecision:
        """Suspend until the reviewer decides, the timeout fires, or the session is cancelled."""
        pending = self._install(state.session_id)
        state.awaiting_human = True
        state.touch()
        logger.info(
            "Requested human review %s for session %s (timeout=%ss)",
            pending.request_id,
            state.session_id,
            self.timeout_seconds,
        )
        try:
            await notifier.human_input_request(state, pending.request_id, prompt)
            await notifier.stage_update(state)

            done, _ = await asyncio.wait({pending.future}, timeout=self.timeout_seconds)
            if not done:
                note = (
                    f"No reviewer decision within {int(self.timeout_seconds)} seconds; "
                    "continuing collaboration with the current output."
                )
                if pending.try_resolve(HumanReviewDecision.timeout(pending.request_id, note)):
                    logger.warning(
                        "Human review %s for session %s timed out",
                        pending.request_id,
                        state.session_id,
                    )
            decision = pending.future.result()
        finally:
            self._remove(pending)
            if not pending.future.done():
                pending.future.cancel()
            state.awaiting_human = False
            state.touch()

        logger.info(
            "Human review %s resolved as %s",
            pending.request_id,
            decision.decision.value,
        )
        return decision

    def resolve(
        self,
        request_id: str,
        decision: HumanReviewDecision,
        *,
        session_id: Optional[str] = None,
    ) -> bool:
        """Resolve a pending request; False for unknown, foreign or already-resolved ids."""
        pending = self._pending.get(request_id)
        if pending is None:
            logger.warning("Ignoring decision for unknown or expired request %s", request_id)
            return False
        if session_id is not None and pending.session_id != session_id:
            logger.warning(
                "Ignoring decision for request %s from foreign session %s",
                request_id,
                session_id,
            )
            return False
        if decision.request_id != request_id:
            decision = replace(decision, request_id=request_id)
        if not pending.try_resolve(decision):
            logger.info("Ignoring duplicate decision for request %s", request_id)
            return False
        return True

    def cancel_session(self, session_id: str, reason: str = "Session reset") -> bool:
        """Force-resolve a session's pending request as Cancel."""
        pending = self.pending_for(session_id)
        if pending is None:
            return False
        decision = replace(HumanReviewDecision.cancel(reason), request_id=pending.request_id)
        resolved = pending.try_resolve(decision)
        if resolved:
            logger.info("Cancelled pending review %s for session %s", pending.request_id, session_id)
        return resolved
