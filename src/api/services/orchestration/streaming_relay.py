"""Forward completion fragments to the observer while accumulating turn text."""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from .base import OrchestrationCancelToken, is_cancelled
from .events import OrchestrationNotifier, new_turn_content_id
from .types import ParticipantRole, WorkflowState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayResult:
    """Outcome of relaying one agent turn."""

    turn_content_id: str
    text: str
    fragment_count: int = 0
    error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None


class StreamingRelay:
    """Relays one turn's fragments: started -> fragments -> complete.

    The concatenation of forwarded fragments always equals the returned text,
    including when the fragment stream raises partway through.
    """

    def __init__(self, notifier: OrchestrationNotifier):
        self.notifier = notifier

    async def relay(
        self,
        speaker: str,
        fragments: AsyncIterator[str],
        *,
        role: Optional[ParticipantRole] = None,
        state: Optional[WorkflowState] = None,
        cancel_token: Optional[OrchestrationCancelToken] = None,
    ) -> RelayResult:
        turn_content_id = new_turn_content_id()
        parts: List[str] = []
        error: Optional[BaseException] = None
        cancelled = False

        await self.notifier.turn_started(turn_content_id, speaker, state=state, role=role)
        try:
            async for fragment in fragments:
                if is_cancelled(cancel_token):
                    cancelled = True
                    break
                if not fragment:
                    continue
                text = str(fragment)
                parts.append(text)
                await self.notifier.fragment(turn_content_id, speaker, text, state=state, role=role)
            else:
                cancelled = is_cancelled(cancel_token)
        except asyncio.CancelledError:
            await self._close(fragments)
            await self.notifier.turn_complete(turn_content_id, speaker, state=state, role=role)
            raise
        except Exception as e:
            logger.warning(
                "Fragment stream for %s failed after %d fragment(s): %s",
                speaker,
                len(parts),
                e,
            )
            error = e

        await self._close(fragments)
        await self.notifier.turn_complete(turn_content_id, speaker, state=state, role=role)
        return RelayResult(
            turn_content_id=turn_content_id,
            text="".join(parts),
            fragment_count=len(parts),
            error=error,
            cancelled=cancelled,
        )

    @staticmethod
    async def _close(fragments: AsyncIterator[str]) -> None:
        aclose = getattr(fragments, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug("Ignoring error while closing fragment stream: %s", e)
