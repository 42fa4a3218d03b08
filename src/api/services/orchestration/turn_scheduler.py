"""Round-robin turn scheduling with human review hand-off."""

import asyncio
import logging
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

from src.api.models.agent_team import AgentConfig

from .base import OrchestrationCancelToken, SchedulerSettings, is_cancelled
from .context_builder import TurnContext, build_review_prompt, build_role_instructions, build_turn_context
from .errors import ConfigurationError
from .events import OrchestrationNotifier
from .human_gate import HumanGate
from .streaming_relay import RelayResult, StreamingRelay
from .types import (
    AGENT_ROLES,
    HumanReviewDecision,
    ParticipantRole,
    ReviewDecision,
    TurnRecord,
    WorkflowStage,
    WorkflowState,
)

logger = logging.getLogger(__name__)

REVIEWER_SPEAKER = "HumanReviewer"


class TurnScheduler:
    """Drives one session: fixed rounds of alternating agent turns, then human review.

    Owns every mutation of its ``WorkflowState`` apart from the gate's
    ``awaiting_human`` bookkeeping, and runs as a single sequential task.
    """

    def __init__(
        self,
        *,
        state: WorkflowState,
        agents: Sequence[AgentConfig],
        gateway: Any,
        notifier: OrchestrationNotifier,
        human_gate: HumanGate,
        settings: Optional[SchedulerSettings] = None,
        cancel_token: Optional[OrchestrationCancelToken] = None,
    ):
        if len(agents) < 2:
            raise ConfigurationError(
                f"Round-robin collaboration needs at least 2 agents, got {len(agents)}"
            )
        self.state = state
        self.agents: Tuple[AgentConfig, AgentConfig] = (agents[0], agents[1])
        self.gateway = gateway
        self.notifier = notifier
        self.human_gate = human_gate
        self.settings = settings or SchedulerSettings()
        if self.settings.round_turns < 1:
            raise ConfigurationError("A collaboration round needs at least one turn")
        self.cancel_token = cancel_token or OrchestrationCancelToken()
        self.relay = StreamingRelay(notifier)

    @property
    def cancelled(self) -> bool:
        return is_cancelled(self.cancel_token)

    def select_speaker(self, turn_index: int) -> Tuple[AgentConfig, ParticipantRole]:
        """Speaker for the n-th turn of a round: agents alternate starting with the first."""
        slot = turn_index % 2
        return self.agents[slot], AGENT_ROLES[slot]

    def turn_order(self) -> List[str]:
        return [self.select_speaker(i)[0].name for i in range(self.settings.round_turns)]

    async def run(self) -> WorkflowState:
        """Run collaboration rounds until the workflow completes or is cancelled."""
        state = self.state
        if state.is_completed or self.cancelled:
            return state
        first, second = self.agents
        logger.info(
            "Starting round-robin collaboration for session %s: %s",
            state.session_id,
            " -> ".join(self.turn_order()),
        )
        state.transition_to(WorkflowStage.AGENT_COLLABORATION, ParticipantRole.AGENT_A)
        await self.notifier.stage_update(state)
        await self.notifier.system(
            f"Starting {first.name} and {second.name} collaboration",
            "round_robin_start",
            state=state,
        )

        while not state.is_completed:
            await self.run_round()
            if self.cancelled:
                await self._finish_cancelled()
                break
            decision = await self.request_review()
            if self.cancelled:
                await self._finish_cancelled()
                break
            keep_going = await self.apply_decision(decision)
            if not keep_going:
                break
        return state

    async def run_round(self) -> List[TurnRecord]:
        """Execute one fixed-size round; returns the records it appended."""
        records: List[TurnRecord] = []
        for turn_index in range(self.settings.round_turns):
            if self.cancelled:
                break
            if turn_index and self.settings.turn_delay_seconds > 0:
                await asyncio.sleep(self.settings.turn_delay_seconds)
            record = await self.run_turn(turn_index)
            if record is not None:
                records.append(record)
        return records

    async def run_turn(self, turn_index: int) -> Optional[TurnRecord]:
        state = self.state
        agent, role = self.select_speaker(turn_index)
        state.transition_to(WorkflowStage.AGENT_COLLABORATION, role)
        await self.notifier.stage_update(state)

        instructions = build_role_instructions(agent)
        context = build_turn_context(
            state.transcript,
            instructions,
            state.task,
            speaker=agent.name,
            window=self.settings.context_window,
        )
        logger.info(
            "Session %s iteration %s turn %s: %s responding",
            state.session_id,
            state.iteration,
            turn_index + 1,
            agent.name,
        )
        result = await self.relay.relay(
            agent.name,
            self._agent_fragments(agent, context),
            role=role,
            state=state,
            cancel_token=self.cancel_token,
        )
        if result.cancelled or self.cancelled:
            logger.info(
                "Discarding %s turn for cancelled session %s",
                agent.name,
                state.session_id,
            )
            return None

        record = state.append_turn(
            speaker=agent.name,
            content=result.text,
            role=role,
            failed=result.failed,
        )
        if result.failed:
            await self._report_turn_failure(agent, result)
        return record

    async def _agent_fragments(self, agent: AgentConfig, context: TurnContext) -> AsyncIterator[str]:
        # Gateway setup errors surface as stream errors so the relay handles both alike.
        stream = self.gateway.stream(
            session_id=self.state.session_id,
            agent=agent,
            context=context,
        )
        try:
            async for fragment in stream:
                yield fragment
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _report_turn_failure(self, agent: AgentConfig, result: RelayResult) -> None:
        logger.error(
            "Turn by %s in session %s failed after %d fragment(s): %s",
            agent.name,
            self.state.session_id,
            result.fragment_count,
            result.error,
        )
        kept = " Partial output was kept." if result.text else ""
        await self.notifier.system(
            f"{agent.name} could not finish this turn: {result.error}.{kept}",
            "error",
            state=self.state,
        )

    async def request_review(self) -> HumanReviewDecision:
        state = self.state
        state.transition_to(WorkflowStage.HUMAN_REVIEW, ParticipantRole.HUMAN_REVIEWER)
        state.awaiting_human = True
        await self.notifier.stage_update(state)
        if self.cancelled:
            # Reset landed before the gate was installed; nothing to cancel there.
            state.awaiting_human = False
            logger.info("Skipping human review for cancelled session %s", state.session_id)
            return HumanReviewDecision.cancel(self.cancel_token.reason)
        prompt = build_review_prompt(
            state.transcript,
            state.task,
            tail=self.settings.review_summary_turns,
        )
        return await self.human_gate.request(state, prompt, self.notifier)

    async def apply_decision(self, decision: HumanReviewDecision) -> bool:
        """Route a reviewer decision; returns True when another round should run."""
        state = self.state
        if state.is_completed:
            logger.warning(
                "Discarding late %s decision for completed session %s",
                decision.decision.value,
                state.session_id,
            )
            return False

        if decision.timed_out:
            state.consecutive_timeouts += 1
            cap = self.settings.max_review_timeouts
            if cap is not None and state.consecutive_timeouts >= cap:
                await self.notifier.system(
                    f"No reviewer response after {state.consecutive_timeouts} review requests; ending workflow.",
                    "timeout",
                    state=state,
                )
                return await self._complete("Workflow cancelled after repeated review timeouts.", "cancellation")
            await self.notifier.system(decision.feedback or "Review timed out.", "timeout", state=state)
        else:
            state.consecutive_timeouts = 0

        if decision.decision == ReviewDecision.APPROVE:
            return await self._complete("Workflow completed successfully! The output has been approved.", "completion")

        if decision.decision == ReviewDecision.CANCEL:
            return await self._complete("Workflow cancelled by user.", "cancellation")

        if decision.decision == ReviewDecision.REVISE:
            feedback = (decision.feedback or "").strip()
            state.iteration += 1
            state.append_turn(
                speaker=REVIEWER_SPEAKER,
                content=f"REVISION NEEDED: {feedback}" if feedback else "REVISION NEEDED",
                role=ParticipantRole.HUMAN_REVIEWER,
                synthetic=True,
            )
            state.transition_to(WorkflowStage.AGENT_COLLABORATION, ParticipantRole.AGENT_A)
            await self.notifier.system(
                f"Requesting revisions (Iteration {state.iteration}): {feedback}",
                "revision",
                state=state,
            )
            await self.notifier.stage_update(state)
            return True

        state.transition_to(WorkflowStage.AGENT_COLLABORATION, ParticipantRole.AGENT_A)
        await self.notifier.system("Continuing agent collaboration...", "continue", state=state)
        await self.notifier.stage_update(state)
        return True

    async def _complete(self, message: str, sub_kind: str) -> bool:
        state = self.state
        state.transition_to(WorkflowStage.COMPLETED, ParticipantRole.END_USER)
        await self.notifier.system(message, sub_kind, state=state)
        await self.notifier.stage_update(state)
        logger.info("Session %s completed (%s)", state.session_id, sub_kind)
        return False

    async def _finish_cancelled(self) -> None:
        if self.state.is_completed:
            return
        await self._complete(
            f"Workflow stopped: {self.cancel_token.reason}.",
            "cancellation",
        )
