"""Terminal runner: one workflow, streamed to stdout, reviewed from stdin."""

import asyncio
import sys
import threading
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

from src.agents.simple_llm import LLMCompletionGateway
from src.api.config import settings
from src.api.logging_config import setup_logging
from src.api.services.agent_team_service import AgentTeamService
from src.api.services.orchestration import HumanGate, OrchestrationService, SchedulerSettings

CONNECTION_ID = "terminal"


class ConsoleObserver:
    """Prints notifications and answers review requests from stdin.

    A single daemon thread reads stdin; each line is matched against the
    request that is pending when it arrives, so an answer typed after a
    timeout never lands on the expired request.
    """

    def __init__(self, service: OrchestrationService):
        self.service = service
        self.finished = asyncio.Event()
        self._request_id: Optional[str] = None
        self._lines: "asyncio.Queue[str]" = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        threading.Thread(target=self._read_stdin, args=(loop,), daemon=True).start()
        self._consumer = asyncio.create_task(self._answer_reviews())

    async def stop(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)

    def _read_stdin(self, loop: asyncio.AbstractEventLoop) -> None:
        for line in sys.stdin:
            try:
                loop.call_soon_threadsafe(self._lines.put_nowait, line.rstrip("\n"))
            except RuntimeError:
                # Loop already closed
                return

    async def send(self, payload: Dict[str, Any]) -> None:
        kind = payload.get("type")
        if kind == "workflow_state":
            if payload.get("stage") == "Completed":
                self._request_id = None
                self.finished.set()
            return
        if kind == "agent_configurations":
            names = ", ".join(agent["name"] for agent in payload.get("agents", []))
            print(f"\nTeam: {names}")
            return
        if kind == "decision_rejected":
            print(f"\n[decision rejected: {payload.get('reason')}]")
            return
        if kind != "turn":
            return

        message_kind = payload.get("message_kind")
        if message_kind == "agent":
            if payload.get("is_complete"):
                print()
            elif payload.get("fragment"):
                print(payload["fragment"], end="", flush=True)
            else:
                print(f"\n{payload['speaker']}: ", end="", flush=True)
        elif message_kind == "system":
            if payload.get("sub_kind") == "timeout":
                self._request_id = None
            print(f"\n[{payload.get('sub_kind', 'status')}] {payload.get('fragment', '')}")
        elif message_kind == "human-input-request":
            print(f"\n{payload.get('fragment', '')}")
            self._request_id = payload["request_id"]
            print("\nDecision [approve/revise/continue/cancel]: ", end="", flush=True)

    async def _answer_reviews(self) -> None:
        while True:
            answer = (await self._lines.get()).strip()
            request_id = self._request_id
            if request_id is None:
                print("[no review pending; input ignored]")
                continue
            decision = answer or "continue"
            feedback = None
            if decision.lower() == "revise":
                print("Feedback: ", end="", flush=True)
                feedback = await self._lines.get()
            self._request_id = None
            await self.service.submit_decision(CONNECTION_ID, request_id, decision, feedback)


async def run(task: str, team_id: str = "") -> None:
    service = OrchestrationService(
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
    observer = ConsoleObserver(service)
    observer.start()
    try:
        session_id = await service.start_workflow(CONNECTION_ID, task, team_id, observer.send)
        if session_id is not None:
            await observer.finished.wait()
    finally:
        await service.cleanup_connection(CONNECTION_ID)
        await observer.stop()


def main():
    """Run a single workflow from the terminal."""
    setup_logging(log_file_name="terminal.log")

    teams = asyncio.run(AgentTeamService(config_path=settings.agent_teams_config_path).list_teams())
    print("Available teams: " + ", ".join(f"{team_id} ({name})" for team_id, name in teams.items()))
    team_id = sys.argv[1] if len(sys.argv) > 1 else input("Team (empty for default): ").strip()
    task = input("Task: ").strip()
    if not task:
        print("No task given, exiting.")
        return

    try:
        asyncio.run(run(task, team_id))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
