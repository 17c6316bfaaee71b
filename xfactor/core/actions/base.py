"""
Base Agentic Action Interface.

Agentic actions are triggered from session summaries and turn them into
viral loop invitations automatically.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from ...services.summary import SessionSummary
from ..agent_base import ErrorDetail
from ..types import Persona, ViralLoop

if TYPE_CHECKING:
    from ..loops.executor import ExecuteLoopResult, LoopExecutor


@dataclass(frozen=True)
class AgenticActionContext:
    """One summary plus identity, shared read-only by every action."""

    summary: SessionSummary
    user_id: str
    persona: Persona
    session_id: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgenticActionResult:
    success: bool
    action_id: str
    action_type: str
    rationale: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    viral_loop_triggered: ViralLoop | None = None
    invite_generated: bool = False
    message: str | None = None
    invite_code: str | None = None
    latency_ms: float | None = None
    error: ErrorDetail | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "action_id": self.action_id,
            "action_type": self.action_type,
            "run_id": self.run_id,
            "rationale": self.rationale,
            "viral_loop_triggered": self.viral_loop_triggered.value if self.viral_loop_triggered else None,
            "invite_generated": self.invite_generated,
            "invite_code": self.invite_code,
            "message": self.message,
            "latency_ms": self.latency_ms,
            "error": self.error.to_dict() if self.error else None,
        }


class BaseAgenticAction(ABC):
    """
    Abstract base class for agentic actions.

    ``should_trigger`` is a pure decision; ``execute`` is the only step
    allowed to run a loop. The orchestrator only calls either for personas
    listed in ``supported_personas``.
    """

    action_id: ClassVar[str]
    name: ClassVar[str]
    description: ClassVar[str]
    supported_personas: ClassVar[tuple[Persona, ...]]

    @abstractmethod
    async def should_trigger(self, context: AgenticActionContext) -> bool:
        """Check if this action should fire for this summary."""
        ...

    @abstractmethod
    async def execute(
        self,
        context: AgenticActionContext,
        loop_executor: LoopExecutor,
    ) -> AgenticActionResult:
        """Execute the action, usually by running one viral loop."""
        ...

    @abstractmethod
    def get_rationale(self, context: AgenticActionContext) -> str:
        """Explain why this action was or was not triggered."""
        ...

    def validate_context(self, context: AgenticActionContext) -> bool:
        return context.persona in self.supported_personas and context.summary is not None

    def result_from_loop(
        self,
        context: AgenticActionContext,
        loop_result: ExecuteLoopResult,
        message: str,
    ) -> AgenticActionResult:
        """Map a loop execution onto this action's result."""
        if loop_result.success and loop_result.invite is not None:
            return AgenticActionResult(
                success=True,
                action_id=self.action_id,
                action_type=self.action_id,
                rationale=self.get_rationale(context),
                viral_loop_triggered=ViralLoop(loop_result.loop_id),
                invite_generated=True,
                invite_code=loop_result.invite.short_code,
                message=message,
            )

        return AgenticActionResult(
            success=False,
            action_id=self.action_id,
            action_type=self.action_id,
            rationale=loop_result.rationale,
            error=loop_result.error or ErrorDetail("LOOP_ERROR", "Failed to generate invite"),
        )
