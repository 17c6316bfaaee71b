"""
Agentic Action Orchestrator.

Decides which registered actions apply to a session summary and runs them.

Actions are filtered by persona first, then evaluated one at a time in
registration order; every action whose ``should_trigger`` returns True is
executed. A raising action becomes a failed result and never stops the batch.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Iterable

from loguru import logger

from ...services.summary import SessionSummary
from ..agent_base import ErrorDetail
from ..types import Persona
from .base import AgenticActionContext, AgenticActionResult, BaseAgenticAction

if TYPE_CHECKING:
    from ..loops.executor import LoopExecutor


class ActionOrchestrator:
    """Registry and runner for agentic actions."""

    def __init__(self, actions: Iterable[BaseAgenticAction] = ()):
        self._actions: dict[str, BaseAgenticAction] = {}
        for action in actions:
            self.register_action(action)

    def register_action(self, action: BaseAgenticAction) -> None:
        """Register an action, replacing any action with the same id."""
        if action.action_id in self._actions:
            logger.debug("Replacing registered action {}", action.action_id)
        self._actions[action.action_id] = action

    async def process_summary(
        self,
        summary: SessionSummary,
        user_id: str,
        persona: Persona,
        session_id: str,
        loop_executor: LoopExecutor,
        metadata: dict[str, Any] | None = None,
    ) -> list[AgenticActionResult]:
        """
        Run every persona-eligible action that decides to trigger.

        Args:
            summary: Session summary shared by all actions
            user_id: Acting user
            persona: Acting user's persona
            session_id: Session the summary belongs to
            loop_executor: Executor actions use to run loops
            metadata: Optional extra context passed through to actions

        Returns:
            One result per triggered or failed action, in registration order
        """
        context = AgenticActionContext(
            summary=summary,
            user_id=user_id,
            persona=persona,
            session_id=session_id,
            metadata=dict(metadata or {}),
        )

        results: list[AgenticActionResult] = []
        for action in self.get_actions_by_persona(persona):
            start = time.perf_counter()
            try:
                if not await action.should_trigger(context):
                    logger.debug("{} declined: {}", action.name, action.get_rationale(context))
                    continue

                result = await action.execute(context, loop_executor)
                if not result.rationale or not result.rationale.strip():
                    result.rationale = action.get_rationale(context)
                result.latency_ms = round((time.perf_counter() - start) * 1000, 3)
                results.append(result)

                logger.info(
                    "{}: success={} rationale={}",
                    action.name,
                    result.success,
                    result.rationale,
                )
            except Exception as e:
                logger.error("Error in {}: {!r}", action.name, e)
                results.append(AgenticActionResult(
                    success=False,
                    action_id=action.action_id,
                    action_type=action.action_id,
                    rationale=f"{action.name} failed: {e!r}",
                    latency_ms=round((time.perf_counter() - start) * 1000, 3),
                    error=ErrorDetail("ACTION_ERROR", str(e) or type(e).__name__),
                ))

        return results

    def get_action(self, action_id: str) -> BaseAgenticAction | None:
        return self._actions.get(action_id)

    def get_all_actions(self) -> list[BaseAgenticAction]:
        return list(self._actions.values())

    def get_actions_by_persona(self, persona: Persona) -> list[BaseAgenticAction]:
        return [action for action in self._actions.values() if persona in action.supported_personas]

    def get_stats(self) -> dict[str, Any]:
        """Action counts per persona plus a flat listing."""
        actions_by_persona: dict[str, int] = {}
        for action in self._actions.values():
            for persona in action.supported_personas:
                actions_by_persona[persona.value] = actions_by_persona.get(persona.value, 0) + 1

        return {
            "total_actions": len(self._actions),
            "actions_by_persona": actions_by_persona,
            "actions": [
                {
                    "id": action.action_id,
                    "name": action.name,
                    "personas": [p.value for p in action.supported_personas],
                }
                for action in self._actions.values()
            ],
        }
