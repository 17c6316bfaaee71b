"""
Loop Executor.

Runs a viral loop end to end: eligibility, personalization, invite
generation. Also routes invitee joins and FVM completions back to the loop
that issued the invite.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from ...agents.experimentation import ExperimentationRequest
from ...agents.personalization import PersonalizationRequest, personalization_context
from ...services.smart_links import SmartLinkService
from ..agent_base import ErrorDetail
from ..agent_client import AgentClient
from ..events import EventBus, ViralEvent
from ..types import EventType, ViralLoop
from .base import BaseLoop, LoopContext, LoopInvite, LoopReward, PersonalizedCopy
from .registry import LoopRegistry

PERSONALIZATION_AGENT = "personalization"
EXPERIMENTATION_AGENT = "experimentation"


@dataclass
class ExecuteLoopResult:
    success: bool
    loop_id: ViralLoop | str
    rationale: str
    invite: LoopInvite | None = None
    reward: LoopReward | None = None
    error: ErrorDetail | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "loop_id": getattr(self.loop_id, "value", self.loop_id),
            "rationale": self.rationale,
            "invite": vars(self.invite) if self.invite else None,
            "reward": self.reward is not None,
            "error": self.error.to_dict() if self.error else None,
        }


class LoopExecutor:
    """
    Execute loops from the registry.

    Usage:
        executor = LoopExecutor(registry, agent_client, event_bus, smart_links)
        result = await executor.execute(ViralLoop.BUDDY_CHALLENGE, context)
        if result.success:
            print(result.invite.link)
    """

    def __init__(
        self,
        registry: LoopRegistry,
        agent_client: AgentClient,
        event_bus: EventBus | None = None,
        smart_links: SmartLinkService | None = None,
    ):
        self.registry = registry
        self.agent_client = agent_client
        self.event_bus = event_bus
        self.smart_links = smart_links

    async def execute(self, loop_id: ViralLoop | str, context: LoopContext) -> ExecuteLoopResult:
        """
        Execute a viral loop from trigger to invite generation.

        Args:
            loop_id: Loop to run
            context: Inviter identity plus loop-specific metadata

        Returns:
            ExecuteLoopResult; never raises
        """
        loop = self.registry.get(loop_id)
        if loop is None:
            logger.warning("Unknown loop requested: {}", loop_id)
            return ExecuteLoopResult(
                success=False,
                loop_id=loop_id,
                rationale=f"Loop {getattr(loop_id, 'value', loop_id)} is not registered",
                error=ErrorDetail("LOOP_NOT_FOUND", f"Loop {getattr(loop_id, 'value', loop_id)} not found"),
            )

        try:
            if not loop.supports(context.persona):
                return self._not_eligible(
                    loop, f"{loop.name} does not support persona {context.persona.value}"
                )
            if not await loop.is_eligible(context):
                return self._not_eligible(loop, f"User not eligible for {loop.name} loop")

            response = await self.agent_client.call_agent(
                PERSONALIZATION_AGENT,
                PersonalizationRequest.new(
                    agent_id="loop-executor",
                    user_id=context.user_id,
                    context=personalization_context({
                        "subject": context.subject,
                        "age": context.age,
                        "grade": context.grade,
                        **context.metadata,
                    }),
                    persona=context.persona,
                    loop_id=loop.loop_id,
                ),
            )
            if not response.success or response.data is None:
                return ExecuteLoopResult(
                    success=False,
                    loop_id=loop.loop_id,
                    rationale=response.rationale,
                    error=ErrorDetail(
                        "PERSONALIZATION_FAILED",
                        response.error.message if response.error else "Personalization failed",
                    ),
                )

            personalization = response.data
            copy = PersonalizedCopy(
                headline=personalization.copy.headline,
                body=personalization.copy.body,
                cta=personalization.copy.cta,
                channel=personalization.channel,
            )
            invite = await loop.generate_invite(context, copy)

            await self._publish(EventType.LOOP_TRIGGERED, {
                "user_id": context.user_id,
                "loop_id": loop.loop_id.value,
                "persona": context.persona.value,
                "invite_code": invite.short_code,
                "variant": personalization.variant,
            })
            await self._log_experiment(EventType.LOOP_TRIGGERED, loop, context, invite.short_code)

            return ExecuteLoopResult(
                success=True,
                loop_id=loop.loop_id,
                invite=invite,
                rationale=f"Successfully generated invite for {loop.name}. {response.rationale}",
            )
        except Exception as e:
            logger.exception("Loop {} failed for user {}", loop.loop_id.value, context.user_id)
            return ExecuteLoopResult(
                success=False,
                loop_id=loop.loop_id,
                rationale=f"Error executing loop {loop.name}: {e!r}",
                error=ErrorDetail("LOOP_ERROR", str(e) or type(e).__name__),
            )

    async def process_join(self, invite_code: str, invitee: LoopContext) -> ExecuteLoopResult:
        """Process an invitee opening an invite."""
        loop = self._find_loop_by_invite_code(invite_code)
        if loop is None:
            return self._unknown_invite(invite_code)

        try:
            result = await loop.process_join(invite_code, invitee)
        except Exception as e:
            logger.exception("Join failed for invite {}", invite_code)
            return ExecuteLoopResult(
                success=False,
                loop_id=loop.loop_id,
                rationale=f"Error processing join for {loop.name}: {e!r}",
                error=ErrorDetail("LOOP_ERROR", str(e) or type(e).__name__),
            )

        if not result.success:
            return ExecuteLoopResult(
                success=False,
                loop_id=loop.loop_id,
                rationale=result.error or f"Join rejected by {loop.name}",
                error=ErrorDetail("LOOP_ERROR", result.error or "Join rejected"),
            )

        await self._log_experiment(EventType.INVITE_OPENED, loop, invitee, invite_code)

        return ExecuteLoopResult(
            success=True,
            loop_id=loop.loop_id,
            invite=result.invite,
            rationale=f"Invitee successfully joined {loop.name}",
        )

    async def process_fvm(self, invite_code: str, invitee: LoopContext) -> ExecuteLoopResult:
        """Process an invitee reaching the first-value moment."""
        loop = self._find_loop_by_invite_code(invite_code)
        if loop is None:
            return self._unknown_invite(invite_code)

        try:
            reward = await loop.process_fvm(invite_code, invitee)
        except Exception as e:
            logger.exception("FVM processing failed for invite {}", invite_code)
            return ExecuteLoopResult(
                success=False,
                loop_id=loop.loop_id,
                rationale=f"Error processing FVM for {loop.name}: {e!r}",
                error=ErrorDetail("LOOP_ERROR", str(e) or type(e).__name__),
            )

        if reward is None:
            return ExecuteLoopResult(
                success=False,
                loop_id=loop.loop_id,
                rationale="FVM conditions not met or reward window expired",
            )

        await self._log_experiment(EventType.FVM_REACHED, loop, invitee, invite_code)

        return ExecuteLoopResult(
            success=True,
            loop_id=loop.loop_id,
            reward=reward,
            rationale=f"FVM achieved for {loop.name}, rewards allocated",
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_loop_by_invite_code(self, invite_code: str) -> BaseLoop | None:
        if self.smart_links is None:
            return None
        link = self.smart_links.get_link(invite_code)
        if link is None:
            return None
        return self.registry.get(link.metadata.loop_id)

    @staticmethod
    def _unknown_invite(invite_code: str) -> ExecuteLoopResult:
        return ExecuteLoopResult(
            success=False,
            loop_id="unknown",
            rationale=f"Could not determine loop from invite code {invite_code}",
            error=ErrorDetail("LOOP_NOT_FOUND", "Invalid or expired invite code"),
        )

    @staticmethod
    def _not_eligible(loop: BaseLoop, rationale: str) -> ExecuteLoopResult:
        return ExecuteLoopResult(
            success=False,
            loop_id=loop.loop_id,
            rationale=rationale,
            error=ErrorDetail("NOT_ELIGIBLE", rationale),
        )

    async def _log_experiment(
        self,
        event_type: EventType,
        loop: BaseLoop,
        context: LoopContext,
        invite_code: str,
    ) -> None:
        """Record a lifecycle step with the experimentation agent; failures only log."""
        response = await self.agent_client.call_agent(EXPERIMENTATION_AGENT, ExperimentationRequest.new(
            agent_id="loop-executor",
            user_id=context.user_id,
            context={
                "event_type": event_type.value,
                "loop_id": loop.loop_id.value,
                "invite_code": invite_code,
                "persona": context.persona.value,
            },
            action="log_event",
        ))
        if not response.success:
            logger.debug("Experiment log skipped for {}: {}", event_type.value, response.rationale)

    async def _publish(self, event_type: EventType, payload: dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(ViralEvent.create(event_type, payload))
